from pydantic_settings import BaseSettings
from typing import List, Optional
import logging


class Settings(BaseSettings):
    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    database_name: str = "chat"
    messages_collection: str = "messages"
    uploads_bucket: str = "uploads"

    # Public prefix for download links, e.g. "http://localhost:3000".
    # Derived from the upload request when empty.
    public_base_url: Optional[str] = None

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    download_chunk_size: int = 8192

    class Config:
        env_file = ".env"
        extra = "ignore"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


settings = Settings()
