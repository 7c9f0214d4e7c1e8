from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    RENDER_SAMPLE_RATE: int = 44100      # used when no track dictates a rate
    RENDER_CHANNELS: int = 2
    LOOP_CROSSFADE_MS: int = 0            # 0 = gapless

    DEFAULT_LOOP_COUNT: int = 1
    DEFAULT_FADEOUT_MS: int = 0
    DEFAULT_FORMAT: str = "wav"
    DEFAULT_QUALITY: str = "high"

    SIMULATED_TRACK_DURATION_MS: int = 5000
    ENABLE_TIMING_LOGS: bool = False


settings = Settings()
