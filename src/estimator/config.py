"""Configuration management for the estimator application."""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # Vision model
    openai_api_key: str

    # Database
    database_url: str

    # S3/R2 (uploaded estimate documents)
    s3_endpoint: str
    s3_bucket: str
    aws_access_key_id: str
    aws_secret_access_key: str

    openai_base_url: Optional[str] = None
    vision_model: str = "gpt-4o"

    # Runtime guarantees
    max_runtime_ms: int = 20000
    max_file_size_mb: int = 10
    supervisor_max_entries: int = 1000

    # Caller-side retry and batch workers
    max_attempts: int = 3
    batch_workers: int = 4

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Returns:
            Config: Configuration object

        Raises:
            ValueError: If required environment variables are missing
        """
        required_vars = [
            "OPENAI_API_KEY",
            "DATABASE_URL",
            "S3_ENDPOINT",
            "S3_BUCKET",
            "AWS_ACCESS_KEY_ID",
            "AWS_SECRET_ACCESS_KEY",
        ]

        missing = [var for var in required_vars if not os.getenv(var)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            database_url=os.getenv("DATABASE_URL"),
            s3_endpoint=os.getenv("S3_ENDPOINT"),
            s3_bucket=os.getenv("S3_BUCKET"),
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            vision_model=os.getenv("VISION_MODEL", "gpt-4o"),
            max_runtime_ms=int(os.getenv("MAX_RUNTIME_MS", "20000")),
            max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", "10")),
            supervisor_max_entries=int(os.getenv("SUPERVISOR_MAX_ENTRIES", "1000")),
            max_attempts=int(os.getenv("MAX_ATTEMPTS", "3")),
            batch_workers=int(os.getenv("BATCH_WORKERS", "4")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
