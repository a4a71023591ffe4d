from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[3]


def _repo_path(value: str, default: Path) -> Path:
    if not value:
        return default
    path = Path(value)
    return path if path.is_absolute() else REPO_ROOT / path


def _bool_env(name: str, default: bool = False) -> bool:
    value = os.environ.get(name, str(default)).strip().lower()
    return value in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    store_backend: str
    data_path: Path
    ddb_table_name: str
    cors_origins: list[str]
    log_level: str
    strict_round_ties: bool

    @classmethod
    def from_env(cls) -> "Settings":
        env_path = REPO_ROOT / "config" / ".env"
        if env_path.exists():
            # Values already present in the process environment win.
            load_dotenv(dotenv_path=env_path, override=False)

        data_path = os.environ.get("DATA_PATH", "").strip()
        origins = os.environ.get("CORS_ORIGINS", "*")
        return cls(
            store_backend=os.environ.get("STORE_BACKEND", "inmemory").strip().lower(),
            data_path=_repo_path(data_path, REPO_ROOT / "db" / "data.json"),
            ddb_table_name=os.environ.get("DDB_TABLE_NAME", "").strip(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper(),
            strict_round_ties=_bool_env("STRICT_ROUND_TIES"),
        )
