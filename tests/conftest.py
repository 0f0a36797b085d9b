"""
Shared fixtures for the audiostream tests.

FFmpeg is replaced by a small Python script run in a real subprocess, so the
transcoder's process handling and output publishing are exercised without
needing an ffmpeg binary.
"""

import os
import sys

import pytest

from audiostream.config import HLSConfig, ServerConfig
from audiostream.ffmpeg import FFmpegRunner
from audiostream.store import AssetStore, CounterStore
from audiostream.transcoder import Transcoder


FAKE_FFMPEG_SCRIPT = """
import os, sys
out_dir, asset_id, segment_count = sys.argv[1], sys.argv[2], int(sys.argv[3])
lines = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-TARGETDURATION:10",
         "#EXT-X-MEDIA-SEQUENCE:0", "#EXT-X-PLAYLIST-TYPE:VOD"]
for i in range(segment_count):
    name = "segment%03d.ts" % i
    with open(os.path.join(out_dir, name), "wb") as f:
        f.write(b"\\x47" * 188)
    lines.append("#EXTINF:10.000000,")
    lines.append(name)
lines.append("#EXT-X-ENDLIST")
with open(os.path.join(out_dir, asset_id + ".m3u8"), "w") as f:
    f.write("\\n".join(lines) + "\\n")
"""

FAILING_FFMPEG_SCRIPT = """
import sys
sys.stderr.write("Invalid data found when processing input\\n")
sys.exit(1)
"""


class ScriptRunner(FFmpegRunner):
    """Runs a Python script in place of ffmpeg"""

    def __init__(self, script=FAKE_FFMPEG_SCRIPT, segment_count=3):
        super().__init__(HLSConfig())
        self.script = script
        self.segment_count = segment_count
        self.commands = []

    def build_command(self, source_path, output_dir, asset_id):
        command = [sys.executable, "-c", self.script, output_dir, asset_id, str(self.segment_count)]
        self.commands.append(command)
        return command


PLAYLIST_TEMPLATE = (
    "#EXTM3U\n"
    "#EXT-X-VERSION:3\n"
    "#EXT-X-TARGETDURATION:10\n"
    "#EXT-X-MEDIA-SEQUENCE:0\n"
    "#EXT-X-PLAYLIST-TYPE:VOD\n"
    "{entries}"
    "#EXT-X-ENDLIST\n"
)


def write_asset(store, asset_id, segment_count=2, playlist=True):
    """Create an asset directory the way a finished transcode leaves it"""
    asset_dir = store.create_asset_directory(asset_id)
    entries = ""
    for i in range(segment_count):
        name = f"segment{i:03d}.ts"
        with open(os.path.join(asset_dir, name), "wb") as f:
            f.write(bytes([i]) * 188)
        entries += f"#EXTINF:10.000000,\n{name}\n"
    if playlist:
        with open(store.get_playlist_path(asset_id), "w", encoding="utf-8") as f:
            f.write(PLAYLIST_TEMPLATE.format(entries=entries))
    return asset_dir


@pytest.fixture
def server_config(tmp_path):
    return ServerConfig(
        upload_dir=str(tmp_path / "uploads"),
        stats_file=str(tmp_path / "data" / "stats.json"),
        log_dir=str(tmp_path / "logs"),
        allowed_origins=["http://localhost:3000"],
    )


@pytest.fixture
def store(server_config):
    return AssetStore(server_config.upload_dir)


@pytest.fixture
def counters(server_config):
    return CounterStore(server_config.stats_file)


@pytest.fixture
def script_runner():
    return ScriptRunner()


@pytest.fixture
def transcoder(script_runner):
    return Transcoder(HLSConfig(), ffmpeg_runner=script_runner)
