"""
SiteWalk - Application Configuration
"""
from pathlib import Path
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "SiteWalk Floorplans"
    debug: bool = False

    # Database
    # SQLite for development, PostgreSQL (asyncpg) for production
    database_url: str = "sqlite+aiosqlite:///./storage/sitewalk.db"

    # Storage
    storage_path: str = "./storage"
    max_upload_mb: int = 50

    # Layer created with every new floorplan
    default_layer_name: str = "Default"
    default_layer_color: str = "#3B82F6"

    # Editor client
    api_base_url: str = "http://localhost:8000/api"
    client_timeout: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def get_floorplan_storage_path() -> Path:
    """Directory holding uploaded floorplan files (created on demand)."""
    path = Path(get_settings().storage_path) / "floorplans"
    path.mkdir(parents=True, exist_ok=True)
    return path


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
