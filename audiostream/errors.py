"""
错误类型定义

上传、转码、分发过程中的异常分类，每类异常对应一个 HTTP 状态码。
"""


class AudioStreamError(Exception):
    """所有业务异常的基类"""

    status_code = 500
    public_message = "Internal Server Error"


class NoFileUploadedError(AudioStreamError):
    """请求中没有上传文件"""

    status_code = 400
    public_message = "No file uploaded."


class AssetIOError(AudioStreamError):
    """资源目录创建或文件写入失败"""

    status_code = 500
    public_message = "Internal Server Error"


class TranscodeError(AudioStreamError):
    """FFmpeg 转码失败

    Args:
        message: 错误信息
        returncode: FFmpeg 退出码（进程未启动时为 None）
        diagnostic: FFmpeg 输出的诊断信息（stderr 末尾）
    """

    status_code = 500
    public_message = "Error during conversion."

    def __init__(self, message: str, returncode=None, diagnostic: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.diagnostic = diagnostic


class NotFoundError(AudioStreamError):
    """资源不存在

    resource 取值为 asset / playlist / segment，三种情况都返回 404，
    但日志中需要区分。
    """

    status_code = 404

    MESSAGES = {
        "asset": "Audio not found.",
        "playlist": "Playlist not found.",
        "segment": "Segment not found.",
    }

    def __init__(self, resource: str, asset_id: str, detail: str = ""):
        self.resource = resource
        self.asset_id = asset_id
        self.detail = detail
        super().__init__(f"{resource} not found for {asset_id}" + (f": {detail}" if detail else ""))

    @property
    def public_message(self) -> str:
        return self.MESSAGES.get(self.resource, "Not found.")


class CounterPersistenceError(AudioStreamError):
    """播放统计写入磁盘失败（只记录日志，不返回给客户端）"""


class CounterParseError(AudioStreamError):
    """启动时播放统计文件解析失败（重置为空表）"""
