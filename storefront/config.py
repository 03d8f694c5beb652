# storefront/config.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from pathlib import Path
from functools import lru_cache


class Settings(BaseSettings):
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    DATA_DIR: Path = Path("data")  # where the CSV / XLSX tables live
    # any table file may be named *.xlsx to keep that table in Excel instead
    USERS_FILE: str = "users.csv"
    SHIPPING_ADDRESSES_FILE: str = "shipping_addresses.csv"
    PRODUCTS_FILE: str = "products.csv"
    ORDERS_FILE: str = "orders.csv"
    ORDER_ITEMS_FILE: str = "order_items.csv"
    ORDER_STATUS_HISTORY_FILE: str = "order_status_history.csv"
    CARTS_FILE: str = "carts.csv"

    # seconds to wait for a table/row lock before giving up (-1 waits forever)
    LOCK_TIMEOUT: float = 10.0

    ORDER_NUMBER_PREFIX: str = "ORD"
    ORDER_NUMBER_MAX_ATTEMPTS: int = 20

    ORDERS_DEFAULT_PAGE_LIMIT: int = 20
    ORDERS_MAX_PAGE_LIMIT: int = 100

    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"

    # comma separated list, e.g. CORS_ORIGINS=http://localhost:3000,https://shop.example
    CORS_ORIGINS: str = ""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


settings = get_settings()
