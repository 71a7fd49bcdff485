from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "templepoints-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "Temple Points")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8080"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/templepoints_dev")

    # Competition
    competition_goal: int = int(os.getenv("COMPETITION_GOAL", "1300"))
    submissions_list_limit: int = int(os.getenv("SUBMISSIONS_LIST_LIMIT", "50"))
    streak_window_days: int = int(os.getenv("STREAK_WINDOW_DAYS", "7"))

    # Live leaderboard channel
    ws_send_buffer: int = int(os.getenv("WS_SEND_BUFFER", "256"))
    ws_ping_period_seconds: float = float(os.getenv("WS_PING_PERIOD_SECONDS", "54"))
    ws_pong_wait_seconds: float = float(os.getenv("WS_PONG_WAIT_SECONDS", "60"))
    ws_write_wait_seconds: float = float(os.getenv("WS_WRITE_WAIT_SECONDS", "10"))

    # Bootstrap (local runs / demos)
    create_schema: bool = os.getenv("CREATE_SCHEMA", "0") == "1"
    seed_data: bool = os.getenv("SEED_DATA", "0") == "1"
    admin_email: str = os.getenv("ADMIN_EMAIL", "admin@templepoints.org")
    admin_password: str = os.getenv("ADMIN_PASSWORD", "admin123")

settings = Settings()
