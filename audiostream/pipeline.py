"""
上传处理流水线

状态机：received → directory_created → transcoding → succeeded | failed

- 资源目录创建先于转码，转码成功后才删除源文件并登记播放统计
- 转码失败时保留源文件和资源目录，不做清理
"""

import os
import time
import logging
import threading
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Optional, Any

from werkzeug.utils import secure_filename

from .errors import AssetIOError, CounterPersistenceError, TranscodeError
from .store import AssetStore, CounterStore
from .transcoder import Transcoder

logger = logging.getLogger(__name__)

# 没有扩展名时使用的暂存文件后缀，避免与资源目录同名
DEFAULT_UPLOAD_SUFFIX = ".upload"

# 保留的已结束上传记录数量
MAX_FINISHED_INGESTIONS = 100


class IngestionState(Enum):
    """上传处理状态"""
    RECEIVED = "received"
    DIRECTORY_CREATED = "directory_created"
    TRANSCODING = "transcoding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Ingestion:
    """一次上传的处理记录"""

    asset_id: str
    source_path: str
    state: IngestionState = IngestionState.RECEIVED
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def transition(self, state: IngestionState, error: Optional[str] = None):
        self.state = state
        self.error = error
        self.updated_at = time.time()

    def is_finished(self) -> bool:
        return self.state in (IngestionState.SUCCEEDED, IngestionState.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "asset_id": self.asset_id,
            "state": self.state.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class IngestionResult:
    """上传处理成功的结果"""

    asset_id: str
    view_url: str
    play_url: str


class IngestionPipeline:
    """上传处理流水线

    串联资源存储、转码适配器和播放统计。
    """

    def __init__(
        self,
        store: AssetStore,
        counters: CounterStore,
        transcoder: Transcoder,
        upload_dir: Optional[str] = None,
    ):
        """初始化流水线

        Args:
            store: 资源存储
            counters: 播放统计表
            transcoder: 转码适配器
            upload_dir: 上传暂存目录，默认与资源根目录相同
        """
        self.store = store
        self.counters = counters
        self.transcoder = transcoder
        self.upload_dir = os.path.abspath(upload_dir or store.asset_root)
        self.ingestions: Dict[str, Ingestion] = {}
        self.lock = threading.Lock()

    def allocate_asset_id(self) -> str:
        """根据到达时间生成资源 ID（毫秒时间戳）

        同一毫秒内的并发上传可能冲突，这里不做处理。
        """
        return str(int(time.time() * 1000))

    def staging_upload_path(self, asset_id: str, original_filename: str) -> str:
        """获取上传文件的暂存路径 <upload_dir>/<asset_id><ext>

        扩展名取自原始文件名，只对扩展名部分做清理；没有可用的扩展名时
        使用 .upload，暂存文件不会与资源目录 <upload_dir>/<asset_id> 重名。

        Args:
            asset_id: 资源 ID
            original_filename: 客户端提供的原始文件名

        Returns:
            暂存路径
        """
        ext = secure_filename(os.path.splitext(original_filename or "")[1].lstrip("."))
        ext = f".{ext}" if ext else DEFAULT_UPLOAD_SUFFIX
        os.makedirs(self.upload_dir, exist_ok=True)
        return os.path.join(self.upload_dir, f"{asset_id}{ext}")

    def ingest(self, source_path: str) -> IngestionResult:
        """处理一个已保存到暂存路径的上传文件

        阻塞当前请求线程直到转码结束，不影响其他请求。

        Args:
            source_path: 上传文件的暂存路径

        Returns:
            IngestionResult

        Raises:
            AssetIOError: 资源目录创建失败
            TranscodeError: 转码失败
        """
        asset_id = os.path.splitext(os.path.basename(source_path))[0]
        ingestion = Ingestion(asset_id=asset_id, source_path=source_path)
        with self.lock:
            self._prune_finished_ingestions()
            self.ingestions[asset_id] = ingestion

        try:
            output_dir = self.store.create_asset_directory(asset_id)
        except AssetIOError as e:
            ingestion.transition(IngestionState.FAILED, str(e))
            raise
        ingestion.transition(IngestionState.DIRECTORY_CREATED)

        ingestion.transition(IngestionState.TRANSCODING)
        future = self.transcoder.transcode(source_path, output_dir, asset_id)
        try:
            future.result()
        except TranscodeError as e:
            ingestion.transition(IngestionState.FAILED, str(e))
            logger.error(f"Ingestion {asset_id} failed, keeping {source_path} and {output_dir}")
            raise

        self._remove_source(source_path)
        try:
            self.counters.record_new_asset(asset_id)
        except CounterPersistenceError as e:
            logger.error(f"Failed to persist stats for new asset {asset_id}: {e}")

        ingestion.transition(IngestionState.SUCCEEDED)
        logger.info(f"Ingestion {asset_id} succeeded")
        return IngestionResult(
            asset_id=asset_id,
            view_url=f"/view/{asset_id}",
            play_url=f"/play/{asset_id}",
        )

    def _remove_source(self, source_path: str):
        try:
            os.remove(source_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete source file {source_path}: {e}")

    def _prune_finished_ingestions(self):
        """删除最早的已结束记录（调用方需持有锁）"""
        finished = [item for item in self.ingestions.values() if item.is_finished()]
        if len(finished) < MAX_FINISHED_INGESTIONS:
            return
        finished.sort(key=lambda item: item.created_at)
        for item in finished[:len(finished) - MAX_FINISHED_INGESTIONS + 1]:
            self.ingestions.pop(item.asset_id, None)

    def get_ingestion(self, asset_id: str) -> Optional[Ingestion]:
        with self.lock:
            return self.ingestions.get(asset_id)
