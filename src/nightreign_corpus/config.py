from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    embedding_model: str = "BAAI/bge-large-en-v1.5"
    embedding_dimensions: int = 1024
    embedding_batch_size: int = 32

    # Explicit override wins over use_gpu; both unset means auto-detect
    embedding_device: Optional[Literal["cpu", "cuda"]] = None
    use_gpu: Optional[bool] = None

    allow_remote_models: bool = True

    normalized_cache_dir: str = "./cache/normalized"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
