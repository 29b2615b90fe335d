"""
Configuration settings for the exterior design API
"""
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Exterior Design Visualizer API"
    version: str = "1.0.0"
    environment: str = "development"
    debug: bool = True

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Google AI Studio (Gemini image models)
    google_ai_api_key: str = ""
    gemini_image_model: str = "gemini-2.5-flash-image-preview"
    vision_timeout_seconds: float = 120.0
    vision_temperature: float = 0.2

    # Mask acquisition
    mask_pacing_seconds: float = 1.0  # Delay between element requests (rate limits)

    # Design sessions (in memory)
    session_ttl_minutes: int = 60  # Idle sessions are discarded after this long
    max_sessions: int = 100

    # Product catalog
    catalog_path: Optional[str] = None  # JSON file; built-in catalog when unset
    reference_image_max_size: int = 1024
    reference_image_timeout_seconds: float = 30.0
    reference_image_max_retries: int = 3

    # File upload
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    allowed_image_types: List[str] = ["image/jpeg", "image/png", "image/webp"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    pipeline_log_level: str = "INFO"  # vision client, orchestrators, session store
    log_dir: Optional[str] = None  # Rotating JSON log file when set
    log_file_max_bytes: int = 10 * 1024 * 1024  # 10MB

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env


# Global settings instance
settings = Settings()
