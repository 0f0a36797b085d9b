#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os
import json
import logging
from logging.handlers import TimedRotatingFileHandler

from flask import Flask
from flask_cors import CORS

from audiostream import api
from audiostream.config import get_server_config
from audiostream.delivery import DeliveryService
from audiostream.pipeline import IngestionPipeline
from audiostream.store import AssetStore, CounterStore
from audiostream.transcoder import Transcoder

# Configuration file path
CONFIG_FILE = os.environ.get("AUDIOSTREAM_CONFIG", "config/config.json")

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# Configure logging
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

# 配置较少日志输出的模块
for module in ['werkzeug']:
    logging.getLogger(module).setLevel(logging.WARNING)


def setup_logging(log_dir="logs"):
    """Add a rotating file handler to the root logger"""
    os.makedirs(log_dir, exist_ok=True)

    # 添加按日期滚动的文件处理器
    file_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, 'webserver.log'),
        when='midnight',
        interval=1,
        backupCount=3  # 保留3天日志
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(logging.INFO)
    logging.getLogger().addHandler(file_handler)


def load_config(config_file=CONFIG_FILE):
    """Load configuration file"""
    config = {
        "host": "0.0.0.0",
        "port": 5000,
        "upload_dir": "public/uploads",
        "stats_file": "data/stats.json",
        "allowed_origins": [
            "http://localhost:3000",
            "http://yourdomain.com"
        ],
        "max_upload_mb": 200,
        "log_dir": "logs",
        "hls": {
            "ffmpeg_path": "ffmpeg",
            "loglevel": "warning"
        }
    }
    try:
        if os.path.exists(config_file):
            with open(config_file, 'r', encoding='utf-8') as f:
                loaded_config = json.load(f)
                config.update(loaded_config)
                logging.info(f"Loaded configuration file: {config_file}")
        else:
            # Create config directory if it doesn't exist
            os.makedirs(os.path.dirname(config_file) or ".", exist_ok=True)
            # Save default config
            with open(config_file, 'w', encoding='utf-8') as f:
                json.dump(config, f, ensure_ascii=False, indent=2)
                logging.info(f"Created default configuration file: {config_file}")
    except Exception as e:
        logging.error(f"Failed to load configuration file: {str(e)}")

    return config


def create_app(server_config=None, transcoder=None):
    """Create the Flask application

    Args:
        server_config: ServerConfig instance, loaded from CONFIG_FILE when omitted
        transcoder: Transcoder instance, built from server_config when omitted

    Returns:
        Flask application
    """
    if server_config is None:
        server_config = get_server_config(load_config())

    app = Flask(__name__, template_folder='templates', static_folder='static')
    app.config['MAX_CONTENT_LENGTH'] = server_config.max_content_length
    app.config['SERVER_CONFIG'] = server_config

    # Playback routes are fetched directly by players, usually cross-origin
    CORS(app, resources={
        r"/play/*": {
            "origins": "*",
            "send_wildcard": True,
            "methods": ["GET", "OPTIONS"],
            "allow_headers": ["Content-Type"],
        },
        r"/*": {
            "origins": server_config.allowed_origins,
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True,
        },
    })

    store = AssetStore(server_config.upload_dir)
    counters = CounterStore(server_config.stats_file)
    if transcoder is None:
        transcoder = Transcoder(server_config.hls)
    pipeline = IngestionPipeline(store, counters, transcoder, upload_dir=server_config.upload_dir)
    delivery = DeliveryService(store, counters)

    api.init_services(pipeline, delivery, counters)
    api.register_error_handlers(app)
    api.register_routes(app)

    logging.info(f"Serving assets from {store.asset_root}, stats in {counters.stats_file}")
    return app


def main():
    config = get_server_config(load_config())
    setup_logging(config.log_dir)
    app = create_app(config)
    logging.info(f"HLS server is running at http://localhost:{config.port}")
    app.run(host=config.host, port=config.port, threaded=True)


if __name__ == '__main__':
    main()
