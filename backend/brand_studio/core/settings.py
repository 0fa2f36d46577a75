from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Brand Studio"
    database_url: str = "sqlite:///./backend/brand_studio.db"
    storage_dir: str = "storage"
    public_base_url: str = "http://127.0.0.1:8000"
    assets_bucket: str = "brand-assets"
    generated_bucket: str = "generated-images"
    log_level: str = "INFO"
    http_timeout_s: int = 30

    # Remote training / inference provider
    training_provider: str = "mock"
    replicate_api_token: str = ""
    replicate_owner: str = ""
    container_visibility: str = "private"
    container_hardware: str = "gpu-t4"
    trainer_owner: str = "ostris"
    trainer_name: str = "flux-dev-lora-trainer"

    # Training hyperparameters
    train_steps: int = 1000
    lora_rank: int = 16
    optimizer: str = "adamw8bit"
    learning_rate: float = 0.0004

    # Inference parameters
    lora_scale: float = 0.9
    num_inference_steps: int = 28
    output_format: str = "jpg"
    disable_safety_checker: bool = True
    default_aspect_ratio: str = "1:1"

    min_training_images: int = 5
    trigger_prefix: str = "OHJI"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()


def ensure_directories() -> None:
    Path(settings.storage_dir).mkdir(parents=True, exist_ok=True)
