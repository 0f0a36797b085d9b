"""
HTTP API 端点

上传、播放列表/切片分发、播放页面和统计页面。
"""

import logging
from flask import jsonify, request, send_file, render_template, Response

from .errors import (
    AudioStreamError,
    AssetIOError,
    NoFileUploadedError,
    NotFoundError,
)
from .delivery import CORS_HEADERS, PLAYLIST_MIMETYPE, SEGMENT_MIMETYPE

logger = logging.getLogger(__name__)

# 全局服务实例（在 webserver.create_app 中初始化）
PIPELINE = None
DELIVERY = None
COUNTERS = None


def init_services(pipeline, delivery, counters):
    """初始化服务实例

    Args:
        pipeline: IngestionPipeline 实例
        delivery: DeliveryService 实例
        counters: CounterStore 实例
    """
    global PIPELINE, DELIVERY, COUNTERS
    PIPELINE = pipeline
    DELIVERY = delivery
    COUNTERS = counters
    logger.info("Audio stream services initialized")


def _with_cors(response: Response) -> Response:
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


def register_error_handlers(app):
    """注册错误处理：只返回简短的文本信息，不暴露内部细节"""

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        response = Response(e.public_message, status=404, mimetype='text/plain')
        if request.path.startswith('/play/'):
            _with_cors(response)
        return response

    @app.errorhandler(AudioStreamError)
    def handle_audio_stream_error(e):
        return Response(e.public_message, status=e.status_code, mimetype='text/plain')

    @app.errorhandler(413)
    def handle_too_large(e):
        return Response("File too large.", status=413, mimetype='text/plain')


def register_routes(app):
    """注册路由

    Args:
        app: Flask 应用实例
    """

    @app.route('/', methods=['GET'])
    def index():
        """Upload form"""
        return render_template('index.html')

    @app.route('/upload', methods=['POST'])
    def upload():
        """接收上传文件并转码为 HLS

        multipart 字段名为 audioFile。转码完成后才返回。
        """
        file = request.files.get('audioFile')
        if file is None or not file.filename:
            raise NoFileUploadedError("Request has no audioFile")

        asset_id = PIPELINE.allocate_asset_id()
        source_path = PIPELINE.staging_upload_path(asset_id, file.filename)
        try:
            file.save(source_path)
        except OSError as e:
            logger.error(f"Failed to save upload to {source_path}: {e}")
            raise AssetIOError(f"Failed to save upload: {e}") from e

        logger.info(f"Received upload {file.filename!r} as {source_path}")

        result = PIPELINE.ingest(source_path)

        return (
            f'File uploaded and converted! Access it at '
            f'<a href="{result.view_url}">{result.view_url}</a>'
        )

    @app.route('/play/<audio_id>', methods=['GET'])
    def play_playlist(audio_id):
        """返回改写后的 m3u8 播放列表（增加播放次数）"""
        playlist = DELIVERY.fetch_playlist(audio_id)
        response = Response(playlist, mimetype=PLAYLIST_MIMETYPE)
        return _with_cors(response)

    @app.route('/play/<audio_id>/<segment>', methods=['GET'])
    def play_segment(audio_id, segment):
        """返回切片文件（不增加播放次数）"""
        segment_path = DELIVERY.fetch_segment(audio_id, segment)
        response = send_file(segment_path, mimetype=SEGMENT_MIMETYPE)
        return _with_cors(response)

    @app.route('/view/<audio_id>', methods=['GET'])
    def view(audio_id):
        """Player page"""
        return render_template('play.html', audio_id=audio_id)

    @app.route('/stats', methods=['GET'])
    def stats_page():
        """View counts page"""
        return render_template('stats.html', stats=COUNTERS.all_counters())

    @app.route('/api/stats', methods=['GET'])
    def stats_api():
        return jsonify({"success": True, "stats": COUNTERS.all_counters()})

    @app.route('/api/transcode/status/<audio_id>', methods=['GET'])
    def transcode_status(audio_id):
        """获取上传处理和转码任务状态

        Args:
            audio_id: 资源 ID

        Returns:
            状态 JSON
        """
        ingestion = PIPELINE.get_ingestion(audio_id)
        task = PIPELINE.transcoder.get_task(audio_id)

        if ingestion is None and task is None:
            return jsonify({"error": "Task not found"}), 404

        response = {
            "success": True,
            "asset_id": audio_id,
            "views": COUNTERS.get_views(audio_id),
            "playlist_url": f"/play/{audio_id}",
        }
        if ingestion:
            response["ingestion"] = ingestion.to_dict()
        if task:
            response["task"] = task.to_dict()
        return jsonify(response)
