from typing import Literal

from pydantic import Field, PostgresDsn, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: PostgresDsn = Field(..., alias="DATABASE_URL")
    DEBUG: bool = Field(default=False, alias="DEBUG")
    REDIS_URL: RedisDsn = Field(..., alias="REDIS_URL")  # celery broker and result backend
    GOOGLE_API_KEY: str = Field(..., alias="GOOGLE_API_KEY")
    JWT_SECRET: str = Field(..., alias="JWT_SECRET")
    JWT_AUDIENCE: str = Field(default="authenticated", alias="JWT_AUDIENCE")

    # Model Configuration
    CHAT_MODEL: str = Field(default="gemini-2.5-flash-lite", alias="CHAT_MODEL")
    CHAT_TEMPERATURE: float = Field(default=0.0, alias="CHAT_TEMPERATURE")
    EMBEDDING_MODEL: str = Field(
        default="BAAI/bge-small-en-v1.5", alias="EMBEDDING_MODEL"
    )
    EMBEDDING_DIMENSIONS: int = Field(default=384, alias="EMBEDDING_DIMENSIONS")

    # Retrieval Configuration
    VECTOR_BACKEND: Literal["pgvector", "memory"] = Field(
        default="pgvector", alias="VECTOR_BACKEND"
    )
    CHUNK_SIZE: int = Field(default=1000, alias="CHUNK_SIZE")
    CHUNK_OVERLAP: int = Field(default=200, alias="CHUNK_OVERLAP")
    RETRIEVAL_TOP_K: int = Field(default=3, alias="RETRIEVAL_TOP_K")
    GENERATION_TIMEOUT_SECONDS: float = Field(
        default=120.0, alias="GENERATION_TIMEOUT_SECONDS"
    )

    # Ingestion Configuration
    MAX_FILE_SIZE: int = Field(default=2 * 1024 * 1024, alias="MAX_FILE_SIZE")  # 2MB
    INGESTION_EAGER: bool = Field(
        default=False, alias="INGESTION_EAGER"
    )  # run ingestion in-process instead of on the celery worker
    INGESTION_MAX_RETRIES: int = Field(default=3, alias="INGESTION_MAX_RETRIES")

    # Analytics Configuration
    ANALYTICS_MAX_UPDATE_ATTEMPTS: int = Field(
        default=10, alias="ANALYTICS_MAX_UPDATE_ATTEMPTS"
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
