"""Application settings and validation."""

import os
from pathlib import Path

DEFAULT_JWT_SECRET = "change_me_for_prod"
DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "study_tracker.db"


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    PASSWORD_HASH_ROUNDS: int
    DATABASE_URL: str
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    CORS_ORIGINS: list
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "").strip()
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        # 0 keeps tokens unexpiring
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "0"))
        self.PASSWORD_HASH_ROUNDS = int(os.getenv("PASSWORD_HASH_ROUNDS", "29000"))
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if not self.JWT_SECRET:
            if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT:
                raise RuntimeError("JWT_SECRET is not set in environment")
            self.JWT_SECRET = DEFAULT_JWT_SECRET
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == DEFAULT_JWT_SECRET:
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.JWT_EXPIRE_HOURS < 0:
            raise RuntimeError("JWT_EXPIRE_HOURS must be >= 0")


settings = Settings()
