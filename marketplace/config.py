import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str
    sql_echo: bool
    log_level: str
    order_number_prefix: str
    order_number_attempts: int
    auto_create_tables: bool


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./marketplace.db"),
        sql_echo=_flag("SQL_ECHO", "0"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        order_number_prefix=os.getenv("ORDER_NUMBER_PREFIX", "ORD"),
        order_number_attempts=int(os.getenv("ORDER_NUMBER_ATTEMPTS", "5")),
        auto_create_tables=_flag("AUTO_CREATE_TABLES", "1"),
    )


settings = load_settings()
