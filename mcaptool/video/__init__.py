"""
Video input package.

PyAV-based inspection and demuxing of a media file's video stream:

- codec_info: Codec identification and WebCodecs codec strings
- frame_extractor: Single-pass Annex B frame extraction
"""
