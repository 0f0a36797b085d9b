"""
分发服务

根据资源 ID（和可选的切片名）返回改写后的播放列表或切片文件路径，
获取播放列表时增加播放次数。
"""

import logging

from .errors import CounterPersistenceError, NotFoundError
from .playlist import rewrite_playlist
from .store import AssetStore, CounterStore

logger = logging.getLogger(__name__)

PLAYLIST_MIMETYPE = "application/vnd.apple.mpegurl"
SEGMENT_MIMETYPE = "video/mp2t"

# 播放器会跨域直接请求播放列表和切片
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class DeliveryService:
    """分发服务"""

    def __init__(self, store: AssetStore, counters: CounterStore):
        self.store = store
        self.counters = counters

    def _require_asset(self, asset_id: str):
        if not self.store.asset_exists(asset_id):
            error = NotFoundError("asset", asset_id)
            logger.warning(str(error))
            raise error

    def fetch_segment(self, asset_id: str, segment_name: str) -> str:
        """获取切片文件路径

        Args:
            asset_id: 资源 ID
            segment_name: 切片文件名

        Returns:
            切片文件的绝对路径

        Raises:
            NotFoundError: 资源不存在，或切片名不合法/切片不存在
        """
        self._require_asset(asset_id)

        if not self.store.segment_exists(asset_id, segment_name):
            error = NotFoundError("segment", asset_id, detail=repr(segment_name))
            logger.warning(str(error))
            raise error

        return self.store.get_segment_path(asset_id, segment_name)

    def fetch_playlist(self, asset_id: str) -> str:
        """获取改写后的播放列表

        播放次数写入失败只记录日志，不影响返回播放列表。

        Args:
            asset_id: 资源 ID

        Returns:
            改写后的播放列表内容

        Raises:
            NotFoundError: 资源或播放列表不存在
        """
        self._require_asset(asset_id)

        if not self.store.playlist_exists(asset_id):
            error = NotFoundError("playlist", asset_id)
            logger.warning(str(error))
            raise error

        # newline="" 保留原始换行符
        with open(self.store.get_playlist_path(asset_id), 'r', encoding='utf-8', newline='') as f:
            content = f.read()

        try:
            self.counters.increment_view(asset_id)
        except CounterPersistenceError as e:
            logger.error(f"Failed to persist view count for {asset_id}: {e}")

        return rewrite_playlist(content, asset_id)
