import os
import logging
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()

class LeavePolicySettings(BaseModel):
    training_period_days: int = int(os.getenv("TRAINING_PERIOD_DAYS", "10"))
    first_month_days: int = int(os.getenv("FIRST_MONTH_DAYS", "30"))
    probation_period_months: int = int(os.getenv("PROBATION_PERIOD_MONTHS", "3"))
    bond_months: int = int(os.getenv("BOND_MONTHS", "6"))
    first_month_penalty_rate: float = float(os.getenv("FIRST_MONTH_PENALTY_RATE", "0.5"))

    # Payroll arithmetic
    salary_days_divisor: int = 30  # one day's pay = base / 30
    monthly_work_days: int = 22
    standard_work_hours: float = 8.0
    late_after: str = os.getenv("LATE_AFTER", "09:30")
    income_tax_rate: float = float(os.getenv("INCOME_TAX_RATE", "0.10"))
    income_tax_exemption: float = float(os.getenv("INCOME_TAX_EXEMPTION", "50000"))

    # Ledger compare-and-swap retries before surfacing a conflict
    ledger_max_retries: int = int(os.getenv("LEDGER_MAX_RETRIES", "3"))

class Config(BaseModel):
    app_name: str = "HR Leave & Payroll Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./database.db")

    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = "X-Request-ID"

    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    policy: LeavePolicySettings = Field(default_factory=LeavePolicySettings)

settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment != "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.warning("⚠ Using the local SQLite database outside development.")
