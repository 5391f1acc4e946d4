from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "studyroom"

    # development / production
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    JWT_SECRET_KEY: str = "super-secret-key"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1일

    # 방 코드 충돌 시 재시도 횟수
    ROOM_CODE_MAX_RETRIES: int = 10
    # 이보다 짧은 이탈은 위반으로 기록하지 않음 (초)
    MIN_VIOLATION_SECONDS: int = 5
    # 자동 종료 체크 주기 (초)
    COMPLETION_POLL_SECONDS: float = 1.0

    CORS_ORIGINS: List[str] = [
        "http://localhost:8081",
        "http://127.0.0.1:8081",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
