"""
Pytest configuration and shared media fixtures.

Sample videos are generated with PyAV's H.264 encoder at session start.
Tests that need them are skipped when the local FFmpeg build ships no
H.264 encoder.
"""

from pathlib import Path

import av
import pytest
from dotenv import load_dotenv

# Load .env file from project root
project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")

VIDEO_WIDTH = 64
VIDEO_HEIGHT = 48
FRAME_RATE = 30
FRAME_COUNT = 30
GOP_SIZE = 10

_H264_ENCODERS = ("libx264", "libopenh264", "h264")


def _find_h264_encoder() -> str | None:
    for name in _H264_ENCODERS:
        try:
            av.Codec(name, "w")
            return name
        except Exception:
            continue
    return None


def _encode_h264_mp4(path: Path, encoder: str, b_frames: int = 0) -> None:
    with av.open(str(path), mode="w") as container:
        stream = container.add_stream(encoder, rate=FRAME_RATE, options={"g": str(GOP_SIZE), "bf": str(b_frames)})
        stream.width = VIDEO_WIDTH
        stream.height = VIDEO_HEIGHT
        stream.pix_fmt = "yuv420p"

        for i in range(FRAME_COUNT):
            frame = av.VideoFrame(VIDEO_WIDTH, VIDEO_HEIGHT, "yuv420p")
            for plane in frame.planes:
                plane.update(bytes([(i * 8) % 256]) * plane.buffer_size)
            frame.pts = i
            for packet in stream.encode(frame):
                container.mux(packet)

        for packet in stream.encode(None):
            container.mux(packet)


@pytest.fixture(scope="session")
def h264_mp4(tmp_path_factory) -> Path:
    """A short H.264 MP4 without B-frames."""
    encoder = _find_h264_encoder()
    if encoder is None:
        pytest.skip("No H.264 encoder available in this FFmpeg build")

    path = tmp_path_factory.mktemp("media") / "sample.mp4"
    _encode_h264_mp4(path, encoder)
    return path


@pytest.fixture(scope="session")
def h264_packets(h264_mp4) -> list[tuple[int, bool]]:
    """(pts, is_keyframe) of every video packet in ``h264_mp4``, read with plain PyAV."""
    with av.open(str(h264_mp4)) as container:
        stream = container.streams.video[0]
        return [(packet.pts, packet.is_keyframe) for packet in container.demux(stream) if packet.size > 0]


@pytest.fixture(scope="session")
def h264_bframes_mp4(tmp_path_factory) -> Path:
    """A short H.264 MP4 with B-frames (frame reordering)."""
    try:
        av.Codec("libx264", "w")
    except Exception:
        pytest.skip("libx264 is required to encode B-frames")

    path = tmp_path_factory.mktemp("media") / "bframes.mp4"
    _encode_h264_mp4(path, "libx264", b_frames=2)
    return path
