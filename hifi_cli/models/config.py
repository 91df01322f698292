"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .quality import AudioFormat

DEFAULT_API_BASE_URL = "https://maus.qqdl.site"
DEFAULT_ALBUM_API_URL = "https://hund.qqdl.site"


def default_download_dir() -> str:
    return str(Path("~/Music/hifi-cli").expanduser())


class AppConfig(BaseModel):
    """A validated configuration model for the application."""

    # Catalog
    api_base_url: str = DEFAULT_API_BASE_URL
    album_api_url: str = DEFAULT_ALBUM_API_URL

    # Download Settings
    download_dir: str = Field(default_factory=default_download_dir)
    download_format: AudioFormat = AudioFormat.FLAC
    album_delay: float = 0.25
    embed_tags: bool = True
    ffmpeg_path: str = "ffmpeg"

    # Playback Settings
    mpv_path: str = "mpv"
    volume: int = 50

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("download_format", mode="before")
    @classmethod
    def validate_format(cls, v):
        """Accepts the format name in any case."""
        if isinstance(v, str):
            v = v.lower()
            if v not in ("flac", "mp3"):
                raise ValueError("Download format must be 'flac' or 'mp3'.")
        return v

    @field_validator("album_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0 or v > 30:
            raise ValueError("Album delay must be between 0 and 30 seconds.")
        return v

    @field_validator("volume")
    @classmethod
    def validate_volume(cls, v: int) -> int:
        if v < 0 or v > 100:
            raise ValueError("Volume must be between 0 and 100.")
        return v

    @field_validator("api_base_url", "album_api_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Catalog URL must be http(s), got: {v}")
        return v.rstrip("/")

    @field_validator("download_dir")
    @classmethod
    def validate_download_dir(cls, v: str) -> str:
        if not v:
            raise ValueError("Download directory cannot be empty.")
        return str(Path(v).expanduser())

    def resolve_download_dir(self) -> Path:
        """
        Returns the configured folder if it exists, otherwise the default
        folder, which is created on demand.
        """
        configured = Path(self.download_dir)
        if configured.is_dir():
            return configured
        fallback = Path(default_download_dir())
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
