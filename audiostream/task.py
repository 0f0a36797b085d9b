"""
转码任务数据模型

定义转码任务的数据结构和状态管理。
"""

import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from subprocess import Popen


class TaskStatus(Enum):
    """任务状态枚举"""
    PENDING = "pending"      # 等待启动
    RUNNING = "running"      # 运行中
    COMPLETED = "completed"  # 已完成（切片和播放列表已放入资源目录）
    ERROR = "error"          # 错误


@dataclass
class TranscodeTask:
    """转码任务数据模型

    每次上传对应一个任务，任务结束后状态不再改变。
    """

    # 基本信息
    asset_id: str
    source_path: str
    output_dir: str
    staging_dir: str

    # 状态信息
    status: TaskStatus = TaskStatus.PENDING
    error: Optional[str] = None
    returncode: Optional[int] = None
    segment_count: int = 0

    # 进程信息
    process: Optional[Popen] = None

    # 时间戳
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def mark_running(self, process: Popen):
        self.process = process
        self.status = TaskStatus.RUNNING
        self.started_at = time.time()

    def mark_completed(self, segment_count: int):
        self.status = TaskStatus.COMPLETED
        self.segment_count = segment_count
        self.completed_at = time.time()

    def mark_error(self, error: str, returncode: Optional[int] = None):
        """标记为错误

        Args:
            error: 错误信息
            returncode: FFmpeg 退出码
        """
        self.status = TaskStatus.ERROR
        self.error = error
        self.returncode = returncode
        self.completed_at = time.time()

    def is_finished(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.ERROR)

    def get_elapsed_time(self) -> float:
        """获取任务已运行时间（秒）"""
        if self.started_at is None:
            return 0
        end_time = self.completed_at or time.time()
        return end_time - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（用于 API 响应，不包含文件路径）"""
        result = {
            "asset_id": self.asset_id,
            "status": self.status.value,
            "segment_count": self.segment_count,
            "created_at": self.created_at,
            "elapsed": self.get_elapsed_time(),
        }

        if self.started_at:
            result["started_at"] = self.started_at
        if self.completed_at:
            result["completed_at"] = self.completed_at
        if self.error:
            result["error"] = self.error
        if self.returncode is not None:
            result["returncode"] = self.returncode

        return result
