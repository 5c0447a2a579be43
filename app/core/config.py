from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # App Basics
    app_env: str = "dev"
    app_name: str = "Secret Link Locker"
    app_base_url: str = "http://localhost:8000"
    log_level: str = "info"
    log_json: bool = True

    # Database
    database_url: str = "sqlite:///./dev.db"
    db_echo: bool = False

    # JWT
    jwt_secret: str = "secret_key"
    jwt_alg: str = "HS256"
    jwt_access_ttl_min: int = 60

    # Uploaded files (served under /files)
    storage_dir: str = "./uploads"
    max_upload_bytes: int = 50 * 1024 * 1024

    # Mercado Pago (card checkout)
    mp_access_token: str = ""
    mp_webhook_url: str = ""
    mp_webhook_secret: str = ""
    mp_currency: str = "USD"

    # Coinbase Commerce (crypto checkout)
    coinbase_api_key: str = ""
    coinbase_webhook_secret: str = ""

    # Tell pydantic to read from .env file
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
    )

settings = Settings()
