"""
服务配置模块

定义上传目录、统计文件、跨域白名单和 FFmpeg 相关的配置参数和默认值。
"""

import os
from typing import List
from dataclasses import dataclass, field


DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://yourdomain.com",
]


@dataclass
class HLSConfig:
    """FFmpeg 配置

    编码器、码率、切片时长是固定的，见 FFmpegRunner。
    """

    ffmpeg_path: str = "ffmpeg"
    loglevel: str = "warning"


@dataclass
class ServerConfig:
    """服务配置

    从全局配置字典中读取参数，提供默认值。
    """

    host: str = "0.0.0.0"
    port: int = 5000
    upload_dir: str = "public/uploads"  # 上传暂存目录，同时也是资源根目录
    stats_file: str = "data/stats.json"
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    max_upload_mb: int = 200
    log_dir: str = "logs"
    hls: HLSConfig = field(default_factory=HLSConfig)

    @classmethod
    def from_app_config(cls, app_config: dict) -> 'ServerConfig':
        """从应用配置创建 ServerConfig

        Args:
            app_config: 全局配置字典

        Returns:
            ServerConfig 实例
        """
        config = cls()

        if "host" in app_config:
            config.host = app_config["host"]
        if "port" in app_config:
            config.port = int(app_config["port"] or 5000)
        if "upload_dir" in app_config:
            config.upload_dir = app_config["upload_dir"]
        if "stats_file" in app_config:
            config.stats_file = app_config["stats_file"]
        if "allowed_origins" in app_config:
            config.allowed_origins = list(app_config["allowed_origins"] or [])
        if "max_upload_mb" in app_config:
            config.max_upload_mb = int(app_config["max_upload_mb"] or 200)
        if "log_dir" in app_config:
            config.log_dir = app_config["log_dir"]

        hls_config = app_config.get("hls", {}) or {}
        if "ffmpeg_path" in hls_config:
            config.hls.ffmpeg_path = hls_config["ffmpeg_path"]
        if "loglevel" in hls_config:
            config.hls.loglevel = hls_config["loglevel"]

        # 环境变量优先
        if os.environ.get("PORT"):
            config.port = int(os.environ["PORT"])
        if os.environ.get("AUDIOSTREAM_UPLOAD_DIR"):
            config.upload_dir = os.environ["AUDIOSTREAM_UPLOAD_DIR"]
        if os.environ.get("AUDIOSTREAM_STATS_FILE"):
            config.stats_file = os.environ["AUDIOSTREAM_STATS_FILE"]

        return config

    @property
    def max_content_length(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def get_server_config(app_config: dict) -> ServerConfig:
    """获取服务配置的便捷函数

    Args:
        app_config: 全局配置字典

    Returns:
        ServerConfig 实例
    """
    return ServerConfig.from_app_config(app_config)
