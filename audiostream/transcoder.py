"""
转码适配器

封装 FFmpeg 外部进程：输入源文件路径和资源目录，异步产出播放列表和切片。

- 每次调用返回一个 Future，转码结束时恰好完成一次（成功或 TranscodeError）
- FFmpeg 先输出到暂存目录，成功后再把切片和播放列表移入资源目录，
  分发服务不会看到写了一半的输出
- 不重试、不设超时、不支持取消
"""

import os
import re
import shutil
import logging
import threading
from concurrent.futures import Future
from typing import Dict, Optional, List, Any

from .config import HLSConfig
from .errors import TranscodeError
from .ffmpeg import FFmpegRunner
from .playlist import list_segment_references
from .store import STAGING_DIR_NAME
from .task import TranscodeTask

logger = logging.getLogger(__name__)

SEGMENT_FILE_PATTERN = re.compile(r"^segment\d+\.ts$")

# 失败时保留的 FFmpeg 输出行数
DIAGNOSTIC_LINES = 20

# 保留的已结束任务数量（超出后删除最早的）
MAX_FINISHED_TASKS = 100


class Transcoder:
    """转码适配器

    管理转码任务，每个任务由一个监控线程等待 FFmpeg 进程结束。
    """

    def __init__(self, config: HLSConfig, ffmpeg_runner: Optional[FFmpegRunner] = None):
        self.config = config
        self.ffmpeg_runner = ffmpeg_runner or FFmpegRunner(config)
        self.tasks: Dict[str, TranscodeTask] = {}
        self.lock = threading.RLock()

    def transcode(self, source_path: str, output_dir: str, asset_id: str) -> Future:
        """启动转码

        Args:
            source_path: 源文件路径
            output_dir: 资源目录（必须已存在）
            asset_id: 资源 ID

        Returns:
            Future，结果为 TranscodeTask；失败时异常为 TranscodeError
        """
        staging_dir = os.path.join(os.path.dirname(output_dir), STAGING_DIR_NAME, asset_id)
        task = TranscodeTask(
            asset_id=asset_id,
            source_path=source_path,
            output_dir=output_dir,
            staging_dir=staging_dir,
        )
        future = Future()
        future.set_running_or_notify_cancel()

        with self.lock:
            self._prune_finished_tasks()
            self.tasks[asset_id] = task

        try:
            os.makedirs(staging_dir, exist_ok=True)
            command = self.ffmpeg_runner.build_command(source_path, staging_dir, asset_id)
            logger.info(f"Starting FFmpeg for {asset_id}: {self.ffmpeg_runner.get_command_line_string(command)}")
            process = self.ffmpeg_runner.start_process(command)
        except FileNotFoundError:
            self._fail(task, future, TranscodeError(f"ffmpeg executable not found: {self.config.ffmpeg_path}"))
            return future
        except OSError as e:
            self._fail(task, future, TranscodeError(f"Failed to start FFmpeg: {e}"))
            return future

        task.mark_running(process)

        monitor_thread = threading.Thread(
            target=self._monitor_task,
            args=(task, future),
            daemon=True,
            name=f"TranscodeMonitor-{asset_id}"
        )
        monitor_thread.start()
        return future

    def _monitor_task(self, task: TranscodeTask, future: Future):
        """等待 FFmpeg 进程结束并完成 Future

        Args:
            task: 转码任务
            future: 对应的 Future
        """
        try:
            _, stderr = task.process.communicate()
            returncode = task.process.returncode
            task.process = None
            diagnostic = self._get_diagnostic(stderr)

            if returncode != 0:
                raise TranscodeError(
                    f"FFmpeg exited with code {returncode}",
                    returncode=returncode,
                    diagnostic=diagnostic,
                )

            segment_count = self._publish_output(task)
        except TranscodeError as e:
            self._fail(task, future, e)
        except Exception as e:
            # 监控线程中的任何异常都必须通过 Future 通知调用方
            self._fail(task, future, TranscodeError(f"Error finishing transcode: {e}"))
        else:
            task.mark_completed(segment_count)
            logger.info(
                f"Task {task.asset_id} completed successfully: "
                f"{segment_count} segments in {task.get_elapsed_time():.1f}s"
            )
            future.set_result(task)

    def _publish_output(self, task: TranscodeTask) -> int:
        """把暂存目录中的切片和播放列表移入资源目录

        先移动所有切片，最后移动播放列表。

        Args:
            task: 转码任务

        Returns:
            切片数量
        """
        playlist_name = f"{task.asset_id}.m3u8"
        staging_playlist = os.path.join(task.staging_dir, playlist_name)
        if not os.path.isfile(staging_playlist):
            raise TranscodeError("FFmpeg finished without writing a playlist", returncode=0)

        segments = self._list_segments(task.staging_dir)
        with open(staging_playlist, 'r', encoding='utf-8') as f:
            referenced = list_segment_references(f.read())
        missing = [name for name in referenced if name not in segments]
        if missing:
            raise TranscodeError(
                f"Playlist references missing segments: {', '.join(missing)}", returncode=0
            )

        for name in segments:
            os.replace(os.path.join(task.staging_dir, name), os.path.join(task.output_dir, name))
        os.replace(staging_playlist, os.path.join(task.output_dir, playlist_name))

        shutil.rmtree(task.staging_dir, ignore_errors=True)
        return len(segments)

    def _prune_finished_tasks(self):
        """删除最早的已结束任务（调用方需持有锁）"""
        finished = [task for task in self.tasks.values() if task.is_finished()]
        if len(finished) < MAX_FINISHED_TASKS:
            return
        finished.sort(key=lambda task: task.created_at)
        for task in finished[:len(finished) - MAX_FINISHED_TASKS + 1]:
            self.tasks.pop(task.asset_id, None)

    def _list_segments(self, directory: str) -> List[str]:
        return sorted(name for name in os.listdir(directory) if SEGMENT_FILE_PATTERN.match(name))

    def _get_diagnostic(self, stderr: Optional[bytes]) -> str:
        if not stderr:
            return ""
        lines = stderr.decode("utf-8", errors="replace").strip().splitlines()
        return "\n".join(lines[-DIAGNOSTIC_LINES:])

    def _fail(self, task: TranscodeTask, future: Future, error: TranscodeError):
        task.mark_error(str(error), error.returncode)
        if error.diagnostic:
            logger.error(f"Task {task.asset_id} failed: {error}\n{error.diagnostic}")
        else:
            logger.error(f"Task {task.asset_id} failed: {error}")
        future.set_exception(error)

    def get_task(self, asset_id: str) -> Optional[TranscodeTask]:
        with self.lock:
            return self.tasks.get(asset_id)

    def get_all_tasks(self) -> List[Dict[str, Any]]:
        """获取所有任务信息

        Returns:
            任务信息列表
        """
        with self.lock:
            return [task.to_dict() for task in self.tasks.values()]
