"""
Placeholder pinhole calibration for the converted video.

Nothing here is measured: the intrinsics come from the coded frame size
and an assumed lens/sensor pair, so that viewers can place the image in a
3D scene at a plausible field of view.
"""

from foxglove_schemas_protobuf.CameraCalibration_pb2 import CameraCalibration
from google.protobuf.timestamp_pb2 import Timestamp

from mcaptool.configs import settings
from mcaptool.const import VIDEO_FRAME_ID


def focal_length_pixels(
    width: int,
    focal_length_mm: float | None = None,
    sensor_width_mm: float | None = None,
) -> float:
    """Horizontal focal length in pixels: f_px = f_mm * width / sensor_width_mm."""
    focal_length_mm = focal_length_mm or settings.calibration_focal_length_mm
    sensor_width_mm = sensor_width_mm or settings.calibration_sensor_width_mm
    return focal_length_mm * width / sensor_width_mm


def synthetic_calibration(
    width: int,
    height: int,
    timestamp: int = 0,
    focal_length_mm: float | None = None,
    sensor_width_mm: float | None = None,
) -> CameraCalibration:
    """Build a distortion-free pinhole ``CameraCalibration`` for a *width* x *height* image."""
    fx = fy = focal_length_pixels(width, focal_length_mm, sensor_width_mm)
    cx = width / 2.0
    cy = height / 2.0

    calibration = CameraCalibration(
        timestamp=Timestamp(seconds=timestamp // 1_000_000_000, nanos=timestamp % 1_000_000_000),
        frame_id=VIDEO_FRAME_ID,
        width=width,
        height=height,
        distortion_model="plumb_bob",
    )
    calibration.D.extend([0.0] * 5)
    calibration.K.extend([fx, 0.0, cx, 0.0, fy, cy, 0.0, 0.0, 1.0])
    calibration.R.extend([1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0])
    calibration.P.extend([fx, 0.0, cx, 0.0, 0.0, fy, cy, 0.0, 0.0, 0.0, 1.0, 0.0])
    return calibration
