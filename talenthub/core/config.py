from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Talent Code Hub API"
    app_env: str = "dev"
    api_prefix: str = "/api"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./talenthub.db"
    create_schema: bool = True

    jwt_secret: str
    jwt_algorithm: str = "HS256"
    session_max_age_seconds: int = 7 * 24 * 60 * 60
    cookie_name: str = "token"
    cookie_secure: bool = False

    otp_ttl_seconds: int = 5 * 60
    bcrypt_rounds: int = 12

    pusher_app_id: str = ""
    pusher_key: str = ""
    pusher_secret: str = ""
    pusher_cluster: str = "us2"

    resend_api_key: str = ""
    resend_api_url: str = "https://api.resend.com"
    from_email: str = "onboarding@resend.dev"

    supabase_url: str = ""
    supabase_service_role_key: str = ""
    avatars_bucket: str = "profile-pictures"
    server_icons_bucket: str = "server-icons"
    attachments_bucket: str = "attachments"
    private_bucket: str = "private-files"
    signed_url_ttl_seconds: int = 60
    max_upload_bytes: int = 5 * 1024 * 1024

    message_page_default: int = 50
    message_page_max: int = 100

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"])


@lru_cache
def get_settings() -> Settings:
    return Settings()
