# clinic_ledger/core/config.py
import os
from typing import List, Optional
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Clinic Revenue Ledger")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ))

    # ---------- MySQL ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "clinic_user")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "clinic_ledger")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # Full URL override (sqlite / postgres / a different mysql host)
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL") or None

    SQL_ECHO: bool = _flag("SQL_ECHO")

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")

    # ---------- Clinic ----------
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ---------- Billing ----------
    SEQUENCE_PADDING: int = int(os.getenv("SEQUENCE_PADDING", "5"))
    PAYMENT_MAX_RETRIES: int = int(os.getenv("PAYMENT_MAX_RETRIES", "3"))
    BILLING_DEFAULT_TAX: str = os.getenv("BILLING_DEFAULT_TAX", "0") or "0"

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+{self.DB_DRIVER}://{quote_plus(self.MYSQL_USER)}:{quote_plus(self.MYSQL_PASSWORD)}"
            f"@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DB}")


settings = Settings()
