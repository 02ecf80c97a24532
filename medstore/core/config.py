# FILE: medstore/core/config.py
import os
from typing import List, Optional
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "MedStore Inventory Ledger")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- Database ----------
    # DATABASE_URL wins when set (sqlite:///..., postgresql://..., mysql+pymysql://...)
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL") or None

    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "medstore")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "medstore")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "medstore")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # seconds a SQLite writer waits on a locked database
    SQLITE_BUSY_TIMEOUT: float = float(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+{self.DB_DRIVER}://{quote_plus(self.MYSQL_USER)}:{quote_plus(self.MYSQL_PASSWORD)}"
            f"@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DB}?charset=utf8mb4")

    # ---------- Clock ----------
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Kolkata")

    # ---------- Inventory defaults ----------
    DEFAULT_REORDER_LEVEL: int = int(os.getenv("DEFAULT_REORDER_LEVEL", "10"))
    DEFAULT_EXPIRY_ALERT_DAYS: int = int(
        os.getenv("DEFAULT_EXPIRY_ALERT_DAYS", "30"))

    # ---------- Document numbers ----------
    BILL_NUMBER_PREFIX: str = os.getenv("BILL_NUMBER_PREFIX", "BILL")
    RETURN_NUMBER_PREFIX: str = os.getenv("RETURN_NUMBER_PREFIX", "RET")
    NUMBER_SEQ_PAD: int = int(os.getenv("NUMBER_SEQ_PAD", "4"))

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
