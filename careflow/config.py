from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = "sqlite:///./careflow.db"
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    openai_api_key: str | None = None
    llama_cloud_api_key: str | None = None
    ai_model: str = "gpt-4o-mini"
    api_base_url: str = "http://localhost:8000"
    allowed_origins: str = "http://localhost:3001"

    max_upload_size_mb: int = 20
    allowed_upload_types: str = "application/pdf,image/jpeg,image/png"
    upload_dir: str = "./uploads"

    appointment_duration_minutes: int = 30
    min_appointment_minutes: int = 10
    max_appointment_minutes: int = 240
    followup_offset_days: int = 7


settings = Settings()
