"""
HLS 播放列表改写

FFmpeg 生成的播放列表中切片是相对路径（segment000.ts），
改写为 /play/<id>/segment000.ts，让播放器的切片请求都经过本服务。
只替换切片文件名，不改变行结构、标签顺序和数值字段。
"""

import re
from typing import List

SEGMENT_REFERENCE = re.compile(r"segment\d+\.ts")


def build_segment_url(asset_id: str, segment_name: str) -> str:
    return f"/play/{asset_id}/{segment_name}"


def rewrite_playlist(content: str, asset_id: str) -> str:
    """改写播放列表中的切片引用

    Args:
        content: 原始播放列表内容
        asset_id: 资源 ID

    Returns:
        改写后的播放列表内容
    """
    return SEGMENT_REFERENCE.sub(lambda m: build_segment_url(asset_id, m.group(0)), content)


def list_segment_references(content: str) -> List[str]:
    """按顺序列出播放列表引用的切片文件名"""
    segments = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = SEGMENT_REFERENCE.search(line)
        if match:
            segments.append(match.group(0))
    return segments
