"""
音频 HLS 转码与分发模块

上传的音频文件经 FFmpeg 转码为 HLS（一个播放列表加若干切片），
通过 /play/<id> 分发，并统计每个资源的播放次数。

核心组件：
- AssetStore / CounterStore：资源目录与播放统计
- Transcoder：FFmpeg 转码适配器
- IngestionPipeline：上传处理流水线
- DeliveryService：播放列表改写与切片分发
"""

from .config import ServerConfig, HLSConfig, get_server_config
from .errors import (
    AudioStreamError,
    NoFileUploadedError,
    AssetIOError,
    TranscodeError,
    NotFoundError,
    CounterPersistenceError,
    CounterParseError,
)
from .store import AssetStore, CounterStore
from .task import TranscodeTask, TaskStatus
from .ffmpeg import FFmpegRunner
from .transcoder import Transcoder
from .pipeline import IngestionPipeline, IngestionState, IngestionResult
from .delivery import DeliveryService
from .playlist import rewrite_playlist

__all__ = [
    'ServerConfig',
    'HLSConfig',
    'get_server_config',
    'AudioStreamError',
    'NoFileUploadedError',
    'AssetIOError',
    'TranscodeError',
    'NotFoundError',
    'CounterPersistenceError',
    'CounterParseError',
    'AssetStore',
    'CounterStore',
    'TranscodeTask',
    'TaskStatus',
    'FFmpegRunner',
    'Transcoder',
    'IngestionPipeline',
    'IngestionState',
    'IngestionResult',
    'DeliveryService',
    'rewrite_playlist',
]
