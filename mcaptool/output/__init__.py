"""
MCAP output package.

- descriptors: Protobuf FileDescriptorSet resolution for MCAP schemas
- writer: MCAP writer with explicit chunk sealing
- calibration: Synthetic pinhole CameraCalibration messages
- split: Per-channel MCAP splitting with an index file
"""
