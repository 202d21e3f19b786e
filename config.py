"""
Deforestation Maps Service Configuration
Manages all settings of the polygon service
"""
from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )

    # Application
    app_name: str = "Deforestation Maps Service"
    app_version: str = "1.0.0"
    debug: bool = False
    lite_mode: bool = False  # SQLite instead of PostgreSQL

    # Server
    host: str = "0.0.0.0"
    port: int = 8081
    workers: int = 4

    # Database - PostgreSQL
    database_url_override: Optional[str] = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "deforestation"
    postgres_user: str = "deforestation"
    postgres_password: str = "deforestation_secret"
    sqlite_path: str = "./deforestation_lite.db"

    @property
    def database_url(self) -> str:
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Authentication (identity is asserted by the upstream identity provider)
    user_id_header: str = "X-User-Id"
    user_email_header: str = "X-User-Email"
    user_name_header: str = "X-User-Name"

    # Geocoding (Nominatim)
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    nominatim_user_agent: str = "MSPO Deforestation Maps"
    nominatim_limit: int = 5
    nominatim_timeout: float = 10.0

    # Persistence gateway (client side)
    api_base_url: str = "http://localhost:8081"
    api_timeout: float = 30.0

    # Polygon store
    history_limit: int = 50
    max_polygons_to_render: int = 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
