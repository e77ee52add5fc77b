"""
Video to MCAP conversion.

Pipeline: identify codec -> open output and register channels -> write one
``foxglove.CompressedImage`` message per frame on ``video`` -> seal the
chunk -> write empty keyframe-index messages on ``video/keyframes`` ->
finalize the file.

Keyframe-index messages reuse the sequence number and log time of the
primary message they point at, and live in their own chunk so readers can
load the whole index without touching frame data.
"""

import logging
from dataclasses import dataclass
from typing import NamedTuple

from foxglove_schemas_protobuf.CameraCalibration_pb2 import CameraCalibration
from foxglove_schemas_protobuf.CompressedImage_pb2 import CompressedImage
from google.protobuf.timestamp_pb2 import Timestamp

from mcaptool.configs import settings
from mcaptool.const import (
    CALIBRATION_TOPIC,
    CODEC_KEY,
    CODED_HEIGHT_KEY,
    CODED_WIDTH_KEY,
    DESCRIPTION_KEY,
    KEYFRAME_INDEX_KEY,
    KEYFRAME_TOPIC,
    MIME_KEY,
    PROTOBUF_ENCODING,
    VIDEO_FRAME_ID,
    VIDEO_TOPIC,
)
from mcaptool.output.calibration import synthetic_calibration
from mcaptool.output.descriptors import build_file_descriptor_set
from mcaptool.output.writer import MultiplexWriter
from mcaptool.video.codec_info import CodecDescriptor, identify_codec
from mcaptool.video.frame_extractor import DemuxError, FrameExtractor, VideoFrame

logger = logging.getLogger(__name__)


class KeyframeIndexEntry(NamedTuple):
    sequence: int
    timestamp: int


@dataclass
class ConversionResult:
    """Counts of messages that were actually appended to the output."""

    frames_written: int = 0
    keyframes_written: int = 0
    write_errors: int = 0
    calibration_written: bool = False


@dataclass
class VideoChannels:
    video: int
    keyframes: int
    calibration: int | None = None


def video_channel_metadata(codec_info: CodecDescriptor) -> dict[str, str]:
    """Channel metadata describing the decoder configuration of the ``video`` topic."""
    metadata = {
        KEYFRAME_INDEX_KEY: KEYFRAME_TOPIC,
        CODED_WIDTH_KEY: str(codec_info.coded_width),
        CODED_HEIGHT_KEY: str(codec_info.coded_height),
        CODEC_KEY: codec_info.codec,
        MIME_KEY: codec_info.mime,
    }
    if codec_info.description:
        metadata[DESCRIPTION_KEY] = codec_info.description.hex()
    return metadata


def register_video_channels(
    writer: MultiplexWriter, codec_info: CodecDescriptor, write_calibration: bool = False
) -> VideoChannels:
    """Register the schemas and channels written by a conversion."""
    image_schema_id = writer.register_schema(
        name=CompressedImage.DESCRIPTOR.full_name,
        encoding=PROTOBUF_ENCODING,
        data=build_file_descriptor_set(CompressedImage.DESCRIPTOR),
    )
    video_channel_id = writer.register_channel(
        VIDEO_TOPIC, PROTOBUF_ENCODING, image_schema_id, video_channel_metadata(codec_info)
    )
    keyframe_channel_id = writer.register_channel(KEYFRAME_TOPIC, "", 0, {})
    channels = VideoChannels(video=video_channel_id, keyframes=keyframe_channel_id)

    if write_calibration:
        calibration_schema_id = writer.register_schema(
            name=CameraCalibration.DESCRIPTOR.full_name,
            encoding=PROTOBUF_ENCODING,
            data=build_file_descriptor_set(CameraCalibration.DESCRIPTOR),
        )
        channels.calibration = writer.register_channel(
            CALIBRATION_TOPIC, PROTOBUF_ENCODING, calibration_schema_id, {}
        )
    return channels


def frame_to_image(frame: VideoFrame, mime: str) -> CompressedImage:
    """Wrap a frame in a ``CompressedImage``; keyframes get a ``"<mime>; keyframe"`` format."""
    return CompressedImage(
        timestamp=Timestamp(seconds=frame.timestamp // 1_000_000_000, nanos=frame.timestamp % 1_000_000_000),
        frame_id=VIDEO_FRAME_ID,
        format=f"{mime}; keyframe" if frame.is_keyframe else mime,
        data=bytes(frame.data),
    )


def convert(
    input_path: str,
    output_path: str,
    write_calibration: bool | None = None,
    chunk_size: int | None = None,
    log: logging.Logger | None = None,
) -> ConversionResult:
    """
    Convert the video stream of *input_path* into an MCAP file at *output_path*.

    The input is fully identified and opened before the output file is
    created, so configuration errors leave no output behind.

    Raises:
        ConfigurationError: the video stream cannot be converted.
        MediaOpenError: the input cannot be opened.
        OutputOpenError / OutputCloseError: the output cannot be created or finalized.
        DemuxError: reading stopped mid-stream. The frames read so far and
            their keyframe index are still written and the file finalized.
    """
    log = log or logger
    if write_calibration is None:
        write_calibration = settings.write_calibration

    codec_info = identify_codec(input_path, log)
    result = ConversionResult()
    keyframes: list[KeyframeIndexEntry] = []
    demux_error: DemuxError | None = None

    with FrameExtractor(input_path, log) as extractor:
        with MultiplexWriter(output_path, chunk_size=chunk_size, log=log) as writer:
            channels = register_video_channels(writer, codec_info, write_calibration)

            if channels.calibration is not None:
                calibration = synthetic_calibration(codec_info.coded_width, codec_info.coded_height)
                result.calibration_written = writer.append_message(
                    channels.calibration, 0, 0, calibration.SerializeToString()
                )

            sequence = 0
            try:
                for frame in extractor:
                    image = frame_to_image(frame, codec_info.mime)
                    if writer.append_message(channels.video, sequence, frame.timestamp, image.SerializeToString()):
                        result.frames_written += 1
                        if frame.is_keyframe:
                            keyframes.append(KeyframeIndexEntry(sequence, frame.timestamp))
                    else:
                        result.write_errors += 1
                    sequence += 1
            except DemuxError as e:
                log.error('[convert] Failed to extract video frames from "%s"', input_path)
                demux_error = e

            # Keyframe index goes into its own chunk
            writer.seal_chunk()

            for entry in keyframes:
                if writer.append_message(channels.keyframes, entry.sequence, entry.timestamp, b""):
                    result.keyframes_written += 1
                else:
                    result.write_errors += 1

    log.debug(
        '[convert] Wrote %d video frames (%d keyframes) to "%s"',
        result.frames_written,
        result.keyframes_written,
        output_path,
    )
    if demux_error is not None:
        raise demux_error
    return result
