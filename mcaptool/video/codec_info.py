"""
Codec identification for the video stream of a media file.

Inspects stream metadata and the out-of-band configuration record
(``extradata``) with PyAV and derives the fully qualified codec string
used by WebCodecs-style consumers. No pixel data is ever decoded.

Codec strings follow the W3C registrations:
  - AVC:  <https://www.w3.org/TR/webcodecs-avc-codec-registration/>
  - HEVC: <https://www.w3.org/TR/webcodecs-hevc-codec-registration/>
  - AV1:  <https://www.w3.org/TR/webcodecs-av1-codec-registration/>
"""

import logging
import struct
from collections.abc import Callable
from dataclasses import dataclass

import av
from av.container import InputContainer
from av.error import FFmpegError

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """The input's video stream cannot be described or converted."""

    pass


class NoVideoStream(ConfigurationError):
    """The input has no video stream."""

    pass


class UnsupportedCodec(ConfigurationError):
    """The video codec has no codec string mapping."""

    pass


class MalformedConfigurationRecord(ConfigurationError):
    """The codec configuration record is missing, too short or invalid."""

    pass


class BFramesUnsupported(ConfigurationError):
    """The stream reorders frames, so decode order differs from presentation order."""

    pass


class MediaOpenError(OSError):
    """The input media file could not be opened or probed."""

    pass


@dataclass(frozen=True, slots=True)
class CodecDescriptor:
    """Normalized description of a video stream's codec."""

    mime: str
    codec: str
    coded_width: int
    coded_height: int
    # Out-of-band decoder configuration; None when parameter sets travel in-band
    description: bytes | None = None


# ────────────────────────────────────────────────────────────────────
# Configuration record parsers
# ────────────────────────────────────────────────────────────────────

# avcC (ISO/IEC 14496-15 5.3.3.1): version, profile, compatibility, level, ...
_AVCC_MIN_SIZE = 10

# hvcC (ISO/IEC 14496-15 8.3.3.1) is at least 23 bytes before the NAL arrays
_HVCC_MIN_SIZE = 23


def avc_codec_string(extradata: bytes) -> str:
    """
    Build ``avc1.PPCCLL`` from an avcC configuration record.

    PP, CC and LL are profile_idc, profile_compatibility and level_idc as
    two lower-case hex digits each. Examples: avc1.640028, avc1.4d401e.
    """
    if len(extradata) < _AVCC_MIN_SIZE or extradata[0] != 1:
        raise MalformedConfigurationRecord(f"Invalid H.264 configuration record ({len(extradata)} bytes)")

    profile_idc, profile_compatibility, level_idc = extradata[1], extradata[2], extradata[3]
    return f"avc1.{profile_idc:02x}{profile_compatibility:02x}{level_idc:02x}"


def hevc_codec_string(extradata: bytes) -> str:
    """
    Build ``hev1.<profile>.<compatibility>.<tier><level>.B0`` from an hvcC record.

    Examples: hev1.1.6.L93.B0, hev1.2.4.L153.B0
    """
    if len(extradata) < _HVCC_MIN_SIZE:
        raise MalformedConfigurationRecord(f"HEVC configuration record is too small ({len(extradata)} bytes)")

    # general_profile_space(2) | general_tier_flag(1) | general_profile_idc(5)
    general_tier_flag = (extradata[1] >> 5) & 0x1
    general_profile_idc = extradata[1] & 0x1F
    (general_profile_compatibility_flags,) = struct.unpack(">I", extradata[2:6])
    # bytes 6..11 are general_constraint_indicator_flags
    general_level_idc = extradata[12]

    compatibility = (general_profile_compatibility_flags >> 16) & 0xFF
    tier = "H" if general_tier_flag else "L"
    flags = 0
    return f"hev1.{general_profile_idc}.{compatibility}.{tier}{general_level_idc}.B{flags}"


def av1_codec_string(extradata: bytes) -> str:
    # av01.<profile>.<level><tier>.<bitDepth>... needs a full av1C parser
    raise UnsupportedCodec("AV1 configuration records are not supported yet")


@dataclass(frozen=True, slots=True)
class CodecFamily:
    """Per-codec handling: mime type, codec string parser and Annex B filter."""

    name: str
    mime: str
    parse: Callable[[bytes], str]
    bitstream_filter: str | None = None


CODEC_FAMILIES: dict[str, CodecFamily] = {
    "h264": CodecFamily("h264", "video/avc", avc_codec_string, "h264_mp4toannexb"),
    "hevc": CodecFamily("hevc", "video/hevc", hevc_codec_string, "hevc_mp4toannexb"),
    "av1": CodecFamily("av1", "video/AV1", av1_codec_string),
}


def get_codec_family(codec_name: str) -> CodecFamily:
    """Look up the codec family for a PyAV codec name."""
    family = CODEC_FAMILIES.get(codec_name)
    if family is None:
        raise UnsupportedCodec(f"Unsupported video codec {codec_name!r}")
    return family


# ────────────────────────────────────────────────────────────────────
# Stream inspection
# ────────────────────────────────────────────────────────────────────


def open_media(path: str) -> InputContainer:
    """Open *path* for demuxing, mapping PyAV failures to MediaOpenError."""
    try:
        return av.open(path, mode="r")
    except (FFmpegError, OSError) as e:
        raise MediaOpenError(f'Failed to open "{path}": {e}') from e


def identify_codec(path: str, log: logging.Logger | None = None) -> CodecDescriptor:
    """
    Describe the first video stream of *path*.

    Args:
        path: Input media file.
        log: Logger to report through; defaults to this module's logger.

    Raises:
        MediaOpenError: the file cannot be opened.
        NoVideoStream: the file contains no video stream.
        BFramesUnsupported: the stream uses frame reordering.
        UnsupportedCodec: the codec has no codec string mapping.
        MalformedConfigurationRecord: the configuration record is invalid.
    """
    log = log or logger
    with open_media(path) as container:
        stream = next((s for s in container.streams if s.type == "video"), None)
        if stream is None:
            log.error('[codec_info] No video stream in "%s"', path)
            raise NoVideoStream(f'No video stream in "{path}"')

        codec_ctx = stream.codec_context
        if codec_ctx.has_b_frames:
            log.error("[codec_info] B-frames are not supported")
            raise BFramesUnsupported(f'Video stream in "{path}" has B-frames')

        try:
            family = get_codec_family(codec_ctx.name)
            extradata = bytes(codec_ctx.extradata) if codec_ctx.extradata else b""
            codec = family.parse(extradata)
        except ConfigurationError as e:
            log.error('[codec_info] %s in "%s"', e, path)
            raise

        descriptor = CodecDescriptor(
            mime=family.mime,
            codec=codec,
            coded_width=codec_ctx.width,
            coded_height=codec_ctx.height,
        )

    log.debug(
        '[codec_info] Input is %dx%d %s; codecs="%s"',
        descriptor.coded_width,
        descriptor.coded_height,
        descriptor.mime,
        descriptor.codec,
    )
    return descriptor
