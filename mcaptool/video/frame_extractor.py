"""
Single-pass video frame extraction with PyAV.

Demuxes the best video stream of a media file, rewrites each packet from
length-prefixed (avcC/hvcC) framing to Annex B start codes with FFmpeg's
``*_mp4toannexb`` bitstream filters, and yields one ``VideoFrame`` per
filtered packet in decode order.

Usage:
    with FrameExtractor(path) as extractor:
        for frame in extractor:
            payload = bytes(frame.data)  # copy before retaining

``frame.data`` is a view over the PyAV packet buffer. The view is
released as soon as the next frame is pulled, so any consumer that keeps
the payload past the current iteration must copy it first.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from fractions import Fraction

from av.bitstream import BitStreamFilterContext
from av.container import InputContainer
from av.error import FFmpegError
from av.packet import Packet

from mcaptool.video.codec_info import NoVideoStream, UnsupportedCodec, get_codec_family, open_media

logger = logging.getLogger(__name__)

NANOSECONDS_PER_SECOND = 1_000_000_000


class DemuxError(Exception):
    """Reading or filtering the input failed before end of stream."""

    pass


@dataclass(slots=True)
class VideoFrame:
    """One compressed access unit in Annex B framing."""

    data: memoryview  # Borrowed; invalidated by the next pull
    timestamp: int  # Presentation time in nanoseconds, clamped at 0
    is_keyframe: bool


def rescale_to_nanoseconds(pts: int, time_base: Fraction) -> int:
    """Convert a timestamp in *time_base* units to integer nanoseconds (truncating)."""
    return int(Fraction(pts) * time_base * NANOSECONDS_PER_SECOND)


class FrameExtractor:
    """
    Scoped, single-pass reader of Annex B video frames.

    ``open()`` (or entering the context) resolves the stream and the
    bitstream filter, so configuration failures surface before any frame
    is produced. Iterating yields frames until end of stream; ``close()``
    (or leaving the context) always releases the container, including
    when the consumer stops early.
    """

    def __init__(self, path: str, log: logging.Logger | None = None) -> None:
        self.path = path
        self._log = log or logger
        self._container: InputContainer | None = None
        self._stream = None
        self._bsf: BitStreamFilterContext | None = None
        self._frames: Iterator[VideoFrame] | None = None
        self._consumed = False
        self.frame_count = 0

    def __enter__(self) -> "FrameExtractor":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        """
        Open the input and set up the Annex B filter.

        Raises:
            MediaOpenError: the file cannot be opened.
            NoVideoStream: no video stream was found.
            UnsupportedCodec: the codec has no Annex B filter.
        """
        container = open_media(self.path)
        try:
            stream = container.streams.best("video")
            if stream is None:
                raise NoVideoStream(f'Failed to find video stream in "{self.path}"')

            family = get_codec_family(stream.codec_context.name)
            if family.bitstream_filter is None:
                raise UnsupportedCodec(f"{family.name} frame extraction is not supported yet")

            self._bsf = BitStreamFilterContext(family.bitstream_filter, stream)
        except Exception as e:
            self._log.error("[frame_extractor] %s", e)
            container.close()
            raise

        self._container = container
        self._stream = stream

    def close(self) -> None:
        """Release the demuxer. Safe to call more than once."""
        if self._frames is not None:
            # Finish the generator first so the last borrowed view is released
            self._frames.close()
            self._frames = None
        if self._container is not None:
            self._container.close()
            self._container = None
        self._stream = None
        self._bsf = None

    def __iter__(self) -> Iterator[VideoFrame]:
        if self._container is None:
            raise RuntimeError("Call open() before iterating frames")
        if self._consumed:
            raise RuntimeError("Frames can only be iterated once")
        self._consumed = True
        self._frames = self._iter_frames()
        return self._frames

    def _iter_frames(self) -> Iterator[VideoFrame]:
        stream = self._stream
        try:
            for packet in self._container.demux(stream):
                # demux() ends with an empty flush packet
                if packet.size == 0:
                    continue
                yield from self._filter(packet)
            yield from self._filter(None)
        except FFmpegError as e:
            self._log.error(
                '[frame_extractor] Demux failed after %d frames in "%s": %s', self.frame_count, self.path, e
            )
            raise DemuxError(f'Failed to read "{self.path}": {e}') from e

        self._log.debug("[frame_extractor] Demux complete: %d frames", self.frame_count)

    def _filter(self, packet: Packet | None) -> Iterator[VideoFrame]:
        time_base = self._stream.time_base
        for filtered in self._bsf.filter(packet):
            pts = filtered.pts if filtered.pts is not None else filtered.dts
            view = memoryview(filtered)
            try:
                self.frame_count += 1
                # Edit lists can shift pre-roll frames before zero; log times are unsigned
                yield VideoFrame(
                    data=view,
                    timestamp=max(rescale_to_nanoseconds(pts or 0, time_base), 0),
                    is_keyframe=bool(filtered.is_keyframe),
                )
            finally:
                view.release()
