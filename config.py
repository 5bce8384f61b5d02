import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        income_category_name: str,
        masked_category_label: str,
        backup_enabled: bool,
        backup_path: Path,
        scheduler_identity: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.income_category_name = income_category_name
        self.masked_category_label = masked_category_label
        self.backup_enabled = backup_enabled
        self.backup_path = backup_path
        self.scheduler_identity = scheduler_identity


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Asia/Tokyo")
    income_category_name = os.getenv("LEDGER_INCOME_CATEGORY", "Income")
    masked_category_label = os.getenv("LEDGER_MASKED_CATEGORY", "Personal expense")
    backup_enabled = _env_flag("LEDGER_BACKUP_ENABLED")
    backup_path = Path(
        os.getenv("LEDGER_BACKUP_PATH", str(data_dir / "expenses_backup.csv"))
    )
    scheduler_identity = os.getenv("LEDGER_SCHEDULER_IDENTITY", "system@scheduled")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        income_category_name=income_category_name,
        masked_category_label=masked_category_label,
        backup_enabled=backup_enabled,
        backup_path=backup_path,
        scheduler_identity=scheduler_identity,
    )
