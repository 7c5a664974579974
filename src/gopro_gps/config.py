import datetime

import pydantic_settings


class GpsTelemetryConfig(pydantic_settings.BaseSettings):
    model_config = pydantic_settings.SettingsConfigDict(env_prefix="GOPRO_GPS_")

    # External tools used to demultiplex the gpmd track
    FFPROBE: str = "ffprobe"
    FFMPEG: str = "ffmpeg"

    # --- Default filter thresholds (None = no filtering) ---
    MIN_FIX: int | None = None
    MAX_PRECISION: int | None = None

    # --- Output table ---
    DELIMITER: str = ", "

    # GPS9 carries days since this date in element 5
    GPS9_EPOCH: datetime.datetime = datetime.datetime(
        2000, 1, 1, tzinfo=datetime.timezone.utc
    )


config = GpsTelemetryConfig()
