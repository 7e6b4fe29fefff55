from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "SealSend"

    database_url: str = "sqlite:///./server_data/sealsend.db"

    # Blob storage: "local", "s3" or "memory"
    storage_type: str = "local"
    storage_dir: str = "./server_data"
    aws_bucket: str = ""
    aws_region: str | None = None

    # Empty means open registration
    registration_token: str = ""

    session_ttl_hours: int = 24
    challenge_ttl_seconds: int = 300
    max_upload_bytes: int = 64 * 1024 * 1024

    log_level: str = "INFO"

    host: str = "0.0.0.0"
    port: int = 8082

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SEALSEND_",
        case_sensitive=False,
        extra="ignore",
    )


def get_settings() -> Settings:
    return Settings()
