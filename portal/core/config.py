from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Local SQLite by default; production points this at the Postgres pooler
    DATABASE_URL: str = "sqlite+aiosqlite:///./portal.db"

    # If DEV and you hit SSL cert issues on Windows, set DB_SSL_VERIFY=false in .env
    DB_SSL_VERIFY: bool = True

    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    SUPER_ADMIN_EMAIL: str | None = None
    SUPER_ADMIN_PASSWORD: str | None = None
    SUPER_ADMIN_NAME: str | None = "Super Admin"
    ENV: str = "dev"  # "dev" or "prod"

    # --- REMOTE DATA API (Mutation Service) ---
    DATA_API_URL: str = "http://localhost:4000/api"
    DATA_API_TIMEOUT: float = 10.0

    # Drop responses that finish after a newer write to the same collection.
    # Off by default: the last response to complete wins.
    DISCARD_STALE_RESPONSES: bool = False

    ACTIVITY_LOG_LIMIT: int = 50
    FRONTEND_URL: str = "http://localhost:5173"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
