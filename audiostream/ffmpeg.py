"""
FFmpeg 进程管理模块

负责构建和执行 FFmpeg 转码命令。
"""

import os
import subprocess
import logging
from typing import List

from .config import HLSConfig

logger = logging.getLogger(__name__)


class FFmpegRunner:
    """FFmpeg 进程管理器

    输出格式固定：AAC 128k，10 秒 VOD 切片。
    """

    AUDIO_CODEC = "aac"
    AUDIO_BITRATE = "128k"
    SEGMENT_DURATION = 10
    SEGMENT_PATTERN = "segment%03d.ts"

    def __init__(self, config: HLSConfig):
        self.config = config
        self.ffmpeg_path = config.ffmpeg_path

    def build_command(self, source_path: str, output_dir: str, asset_id: str) -> List[str]:
        """构建 FFmpeg 命令

        Args:
            source_path: 上传的源文件路径
            output_dir: 输出目录
            asset_id: 资源 ID（播放列表文件名为 <asset_id>.m3u8）

        Returns:
            FFmpeg 命令列表
        """
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", self.config.loglevel,
            "-i", source_path,
        ]

        # 只保留音频（忽略 mp3 等文件中的封面图片流）
        cmd.extend(["-vn"])

        # 音频编码参数
        cmd.extend(["-c:a", self.AUDIO_CODEC])
        cmd.extend(["-b:a", self.AUDIO_BITRATE])

        # HLS 输出参数
        cmd.extend(self._get_hls_params(output_dir))

        cmd.extend(["-y", os.path.join(output_dir, f"{asset_id}.m3u8")])
        return cmd

    def _get_hls_params(self, output_dir: str) -> List[str]:
        return [
            "-f", "hls",
            "-hls_time", str(self.SEGMENT_DURATION),
            "-hls_playlist_type", "vod",
            # 0 表示播放列表保留所有切片
            "-hls_list_size", "0",
            "-hls_segment_type", "mpegts",
            "-start_number", "0",
            "-hls_segment_filename", os.path.join(output_dir, self.SEGMENT_PATTERN),
        ]

    def start_process(self, command: List[str]) -> subprocess.Popen:
        """启动 FFmpeg 进程

        Args:
            command: FFmpeg 命令

        Returns:
            subprocess.Popen 对象

        Raises:
            FileNotFoundError: ffmpeg 可执行文件不存在
            OSError: 进程启动失败
        """
        process = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
        logger.info(f"Started FFmpeg process with PID {process.pid}")
        return process

    def get_command_line_string(self, command: List[str]) -> str:
        """获取命令行字符串（用于日志记录）"""
        return " ".join(command)
