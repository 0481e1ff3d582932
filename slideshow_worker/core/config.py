"""
Application configuration using Pydantic Settings
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # API Settings
    api_title: str = "Slideshow Worker API"
    api_description: str = "Builds slideshow videos from stored images and audio"
    api_version: str = "1.0.0"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False

    # Logging Settings
    log_level: str = "INFO"
    log_format: str = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"
    log_file: str = "data/app.log"

    # S3 Settings
    s3_bucket_name: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint: str = ""
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_force_path_style: bool = True
    """
    S3-compatible storage used for both input assets and the output video.
    When bucket or credentials are missing, a local-disk store rooted at
    local_store_dir is used instead.
    """
    local_store_dir: str = "data/store"

    # Backend Webhook Settings
    backend_url: str = ""
    notify_retries: int = 3
    notify_retry_backoff: float = 0.5
    notify_max_backoff: float = 5.0
    notify_jitter: float = 0.2
    notify_timeout: float = 10.0
    notify_queue_size: int = 1000
    notify_dead_letter_size: int = 100

    # FFmpeg Settings
    ffmpeg_binary_path: str = "ffmpeg"
    ffmpeg_timeout: Optional[float] = 1800.0
    ffmpeg_kill_grace: float = 5.0
    ffmpeg_chunk_size: int = 64 * 1024

    # Slideshow Settings
    slideshow_canvas_width: int = 1280
    slideshow_canvas_height: int = 720
    slideshow_fps: int = 25
    slideshow_pixel_format: str = "yuv420p"
    slideshow_video_codec: str = "libx264"
    slideshow_audio_codec: str = "aac"
    slideshow_default_transition: Optional[float] = 1.0
    slideshow_require_equal_counts: bool = False
    slideshow_output_content_type: str = "video/mp4"

    # Temporary Directory Settings
    temp_base_dir: str = "data/tmp"
    temp_dir_prefix: str = "tmp_slideshow_"
    cleanup_temp_files: bool = True

    @field_validator("backend_url")
    @classmethod
    def strip_backend_url(cls, v):
        """Drop trailing slashes so '/tasks/{id}' can be appended safely.

        Example:
            >>> strip_backend_url("http://backend:8080/")
            'http://backend:8080'
        """
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        # Allow unknown/legacy env vars without failing validation
        "extra": "ignore",
    }

    @property
    def s3_configured(self) -> bool:
        """True when enough S3 settings are present to talk to a bucket."""
        return bool(
            self.s3_bucket_name and self.s3_access_key_id and self.s3_secret_access_key
        )


# Global settings instance
settings = Settings()
