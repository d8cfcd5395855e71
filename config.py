# config.py
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def pick_data_dir() -> Path:
    """First writable of $DATA_DIR, /data, ./data; falls back to the working directory."""
    candidates = []
    env = os.getenv("DATA_DIR")
    if env:
        candidates.append(Path(env))
    candidates += [Path("/data"), Path.cwd() / "data"]

    for p in candidates:
        try:
            p.mkdir(parents=True, exist_ok=True)
            t = p / ".rwtest"
            t.write_text("ok")
            t.unlink(missing_ok=True)
            return p
        except OSError:
            continue
    return Path.cwd()


@dataclass(frozen=True)
class Settings:
    database_url: str
    data_dir: Path
    weekly_overtime_hours: float = 40.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = pick_data_dir()
        default_sqlite = f"sqlite:///{(data_dir / 'payroll.db').as_posix()}"
        return cls(
            database_url=os.getenv("DATABASE_URL") or default_sqlite,
            data_dir=data_dir,
            weekly_overtime_hours=float(os.getenv("WEEKLY_OVERTIME_HOURS", "40")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
