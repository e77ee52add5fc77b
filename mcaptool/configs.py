from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "INFO"  # The logging level to use.
    chunk_size: int = 1024 * 1024  # Target size in bytes of each MCAP chunk before it is flushed.
    write_calibration: bool = False  # Whether to add a synthetic camera calibration channel.
    calibration_focal_length_mm: float = Field(
        4.0, description="Assumed lens focal length used for the synthetic calibration."
    )
    calibration_sensor_width_mm: float = Field(
        6.17, description="Assumed sensor width used for the synthetic calibration (1/2.3\" sensor)."
    )

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
