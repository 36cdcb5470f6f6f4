import os
from decimal import Decimal
from urllib.parse import quote_plus

from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Clinic Billing")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # ---------- MySQL ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "clinic_user")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "clinic_billing")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # DATABASE_URL (if set) wins over the MySQL parts
    SQLALCHEMY_DATABASE_URI: str = os.getenv(
        "DATABASE_URL",
        f"mysql+{DB_DRIVER}://{quote_plus(MYSQL_USER)}:{quote_plus(MYSQL_PASSWORD)}"
        f"@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DB}",
    )

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ---------- Billing ----------
    BILLING_INVOICE_PREFIX: str = os.getenv("BILLING_INVOICE_PREFIX", "INV-")
    BILLING_DEFAULT_DUE_DAYS: int = int(
        os.getenv("BILLING_DEFAULT_DUE_DAYS", "30"))
    BILLING_MONEY_EPSILON: Decimal = Decimal(
        os.getenv("BILLING_MONEY_EPSILON", "0.005"))
    BILLING_ALLOW_CONCURRENT_CLAIMS: bool = _flag(
        "BILLING_ALLOW_CONCURRENT_CLAIMS", "true")


settings = Settings()
