VIDEO_TOPIC = "video"
KEYFRAME_TOPIC = "video/keyframes"
CALIBRATION_TOPIC = "video/calibration"

VIDEO_FRAME_ID = "video"

PROTOBUF_ENCODING = "protobuf"

# Channel metadata keys on the primary video channel
KEYFRAME_INDEX_KEY = "keyframe_index"
CODED_WIDTH_KEY = "video:coded_width"
CODED_HEIGHT_KEY = "video:coded_height"
CODEC_KEY = "video:codec"
MIME_KEY = "video:mime"
DESCRIPTION_KEY = "video:description"

# Split index records
INDEX_METADATA_NAME = "mcapindex"
INDEX_FILENAME_KEY = "mcapindex:filename"
INDEX_MESSAGE_COUNT_KEY = "mcapindex:messageCount"
INDEX_PROFILE = "index"
