"""
资源存储模块

以文件系统作为数据库：
- 每个资源（asset）对应资源根目录下的一个子目录，包含 <id>.m3u8 和 segment###.ts
- 播放统计保存在一个 JSON 文件中，启动时全量加载，每次修改全量重写
"""

import os
import re
import copy
import json
import logging
import threading
from typing import Dict, Optional

from .errors import AssetIOError, CounterParseError, CounterPersistenceError

logger = logging.getLogger(__name__)

# 资源 ID 只允许字母、数字、下划线和连字符
ASSET_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

STAGING_DIR_NAME = ".staging"


def is_valid_asset_id(asset_id: str) -> bool:
    """判断资源 ID 是否合法（不含文件系统不安全字符）"""
    return bool(asset_id) and ASSET_ID_PATTERN.match(asset_id) is not None


def validate_segment_name(segment_name: str) -> bool:
    """校验切片文件名，防止路径穿越

    Args:
        segment_name: 切片文件名

    Returns:
        是否合法
    """
    if not segment_name:
        return False
    if "/" in segment_name or "\\" in segment_name or "\x00" in segment_name:
        return False
    if ".." in segment_name:
        return False
    return True


class AssetStore:
    """资源目录管理

    资源目录在转码开始前创建，转码成功后一次性放入播放列表和切片，之后不再修改。
    """

    def __init__(self, asset_root: str):
        self.asset_root = os.path.abspath(asset_root)

    def get_asset_dir(self, asset_id: str) -> str:
        return os.path.join(self.asset_root, asset_id)

    def get_playlist_path(self, asset_id: str) -> str:
        return os.path.join(self.get_asset_dir(asset_id), f"{asset_id}.m3u8")

    def get_staging_dir(self, asset_id: str) -> str:
        """获取转码暂存目录（FFmpeg 输出先写到这里，成功后再移入资源目录）"""
        return os.path.join(self.asset_root, STAGING_DIR_NAME, asset_id)

    def get_segment_path(self, asset_id: str, segment_name: str) -> Optional[str]:
        """获取切片文件路径

        Args:
            asset_id: 资源 ID
            segment_name: 切片文件名

        Returns:
            切片文件路径，文件名不合法时返回 None
        """
        if not is_valid_asset_id(asset_id) or not validate_segment_name(segment_name):
            return None

        asset_dir = self.get_asset_dir(asset_id)
        segment_path = os.path.realpath(os.path.join(asset_dir, segment_name))
        # 解析后的路径必须仍在资源目录内（处理符号链接）
        if os.path.dirname(segment_path) != os.path.realpath(asset_dir):
            return None
        return segment_path

    def create_asset_directory(self, asset_id: str) -> str:
        """创建资源目录（目录已存在不报错）

        Args:
            asset_id: 资源 ID

        Returns:
            资源目录路径

        Raises:
            AssetIOError: 资源 ID 不合法或目录创建失败
        """
        if not is_valid_asset_id(asset_id):
            raise AssetIOError(f"Invalid asset id: {asset_id!r}")

        asset_dir = self.get_asset_dir(asset_id)
        try:
            os.makedirs(asset_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create asset directory {asset_dir}: {e}")
            raise AssetIOError(f"Failed to create asset directory: {e}") from e
        return asset_dir

    def asset_exists(self, asset_id: str) -> bool:
        if not is_valid_asset_id(asset_id):
            return False
        return os.path.isdir(self.get_asset_dir(asset_id))

    def playlist_exists(self, asset_id: str) -> bool:
        if not is_valid_asset_id(asset_id):
            return False
        return os.path.isfile(self.get_playlist_path(asset_id))

    def segment_exists(self, asset_id: str, segment_name: str) -> bool:
        """判断切片是否存在

        Args:
            asset_id: 资源 ID
            segment_name: 切片文件名

        Returns:
            切片是否存在（文件名不合法时返回 False）
        """
        segment_path = self.get_segment_path(asset_id, segment_name)
        if segment_path is None:
            return False
        return os.path.isfile(segment_path)


class CounterStore:
    """播放统计表

    内存中的 {asset_id: {"views": int}} 映射，修改时全量写回 JSON 文件。
    读-改-写整个过程在同一把锁内完成，避免并发请求丢失更新。
    """

    def __init__(self, stats_file: str):
        self.stats_file = os.path.abspath(stats_file)
        self.lock = threading.Lock()
        self.counters: Dict[str, Dict[str, int]] = self.load_counters()

    def load_counters(self) -> Dict[str, Dict[str, int]]:
        """加载统计文件

        文件不存在时创建空文件；解析失败时记录日志并返回空表，不阻止启动。

        Returns:
            统计表
        """
        try:
            if not os.path.exists(self.stats_file):
                os.makedirs(os.path.dirname(self.stats_file), exist_ok=True)
                with open(self.stats_file, 'w', encoding='utf-8') as f:
                    f.write("{}")
                logger.info(f"Created empty stats file: {self.stats_file}")
                return {}

            with open(self.stats_file, 'r', encoding='utf-8') as f:
                raw = f.read()
            counters = self._parse(raw)
            logger.info(f"Loaded stats for {len(counters)} assets from {self.stats_file}")
            return counters
        except CounterParseError as e:
            logger.error(f"Error parsing {self.stats_file}: {e}")
        except OSError as e:
            logger.error(f"Error reading {self.stats_file}: {e}")
        return {}

    def _parse(self, raw: str) -> Dict[str, Dict[str, int]]:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise CounterParseError(str(e)) from e

        if not isinstance(data, dict):
            raise CounterParseError("stats document is not a JSON object")

        counters = {}
        for asset_id, record in data.items():
            if not isinstance(record, dict):
                raise CounterParseError(f"invalid record for {asset_id!r}")
            views = record.get("views", 0)
            if isinstance(views, bool) or not isinstance(views, int) or views < 0:
                raise CounterParseError(f"invalid view count for {asset_id!r}")
            counters[asset_id] = {"views": views}
        return counters

    def _persist(self):
        """全量写回统计文件（调用方需持有锁）"""
        tmp_path = f"{self.stats_file}.tmp"
        try:
            os.makedirs(os.path.dirname(self.stats_file), exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(self.counters, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.stats_file)
        except OSError as e:
            raise CounterPersistenceError(f"Failed to write {self.stats_file}: {e}") from e

    def record_new_asset(self, asset_id: str):
        """登记新资源，播放次数为 0

        Raises:
            CounterPersistenceError: 写入失败（内存中的记录保留）
        """
        with self.lock:
            self.counters[asset_id] = {"views": 0}
            self._persist()

    def increment_view(self, asset_id: str) -> Optional[int]:
        """播放次数加一

        资源未登记时不做任何处理。

        Args:
            asset_id: 资源 ID

        Returns:
            新的播放次数，未登记时返回 None

        Raises:
            CounterPersistenceError: 写入失败（内存中的计数保留）
        """
        with self.lock:
            record = self.counters.get(asset_id)
            if record is None:
                return None
            record["views"] += 1
            views = record["views"]
            self._persist()
            return views

    def get_views(self, asset_id: str) -> Optional[int]:
        with self.lock:
            record = self.counters.get(asset_id)
            return record["views"] if record else None

    def all_counters(self) -> Dict[str, Dict[str, int]]:
        with self.lock:
            return copy.deepcopy(self.counters)
