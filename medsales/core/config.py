# medsales/core/config.py
from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import secrets


class Settings(BaseSettings):
    # --- Security / JWT ---
    SECRET_KEY: str = secrets.token_urlsafe(32)  # prod'da ENV ile ver
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 saat

    # --- Database ---
    DATABASE_URL: str = "sqlite:///./medsales.db"

    # --- CORS ---
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    # --- Access control ---
    # Bölgesi atanmamış regional_manager / field_user için davranış:
    #   "deny_all"  -> bölge filtreli kaynaklarda hiç satır dönmez
    #   "allow_all" -> eski davranış, filtre atlanır (uyarı loglanır)
    REGION_FALLBACK: str = "deny_all"

    # --- FX (sabit kurlar, 1 birim = X TRY) ---
    FX_USD_TRY: Decimal = Decimal("37.92")
    FX_EUR_TRY: Decimal = Decimal("40.94")
    DEFAULT_CURRENCY: str = "TRY"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

# SQLite için özel connect args
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

# SQLAlchemy Engine & Session
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


