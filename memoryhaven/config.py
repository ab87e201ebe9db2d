import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="MEMORYHAVEN_", extra="ignore")

    # Project Paths
    BASE_DIR: Path = Path(__file__).parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    RECORDINGS_DIR: Path = DATA_DIR / "recordings"
    COMPRESSED_DIR: Path = DATA_DIR / "compressed"
    TEMP_DIR: Path = DATA_DIR / "temp"
    RAW_EXTENSION: str = "webm"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "memoryhaven.log"

    # Media tools
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    PROBE_TIMEOUT: float = 30.0

    # Audio extraction (engine requirements)
    SAMPLE_RATE: int = 16000
    CHANNELS: int = 1

    # STT Settings
    WHISPER_BACKEND: str = "faster-whisper"  # or "whisper-cpp"
    WHISPER_MODEL: str = "base.en"
    WHISPER_DEVICE: str = "cuda"  # Will fallback to cpu if cuda not available
    WHISPER_COMPUTE_TYPE: str = "float16"
    WHISPER_CPP_PATH: str = "whisper-cli"
    WHISPER_CPP_MODEL: Path = BASE_DIR / "models" / "ggml-base.en.bin"
    TRANSCRIPTION_TIMEOUT: float = 600.0
    FALLBACK_TRANSCRIPTION: str = (
        "This is a placeholder transcription. "
        "The whisper.cpp transcription service is being configured."
    )

    # Compression defaults
    VIDEO_BITRATE: str = "1000k"
    AUDIO_BITRATE: str = "128k"
    VIDEO_WIDTH: int = 1280
    VIDEO_HEIGHT: int = 720
    VIDEO_FPS: int = 30
    VIDEO_FORMAT: str = "mp4"
    COMPRESSION_TIMEOUT: float = 1800.0

    # Database
    DATABASE_URL: str = f"sqlite:///{DATA_DIR}/memoryhaven.db"
    DATABASE_ECHO: bool = False

    # HTTP
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000

settings = Settings()

# Ensure data directory exists
os.makedirs(settings.DATA_DIR, exist_ok=True)
