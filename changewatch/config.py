"""Runtime settings, read from the environment.

Values come from CHANGEWATCH_* environment variables (a local .env file is
loaded first) and can be overridden by CLI flags.
"""

import os
from typing import Optional, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_API_URL = "https://webapi.intelligencenode.com/breuninger"

PAGINATION_MODES = ("count", "probe")
KEY_FORMATS = ("text", "objectid")


class Settings(BaseModel):
    api_url: str = DEFAULT_API_URL
    app_key: str = ""
    db_dir: str = "."
    db_name: str = "fashion"
    fetch_workers: int = Field(5, ge=1)
    detect_workers: int = Field(20, ge=1)
    queue_size: int = Field(100, ge=1)
    http_timeout: float = Field(30.0, gt=0)
    pagination: str = "count"
    end_statuses: List[int] = [204, 404]
    treat_errors_as_end: bool = False
    key_format: str = "text"

    @field_validator("pagination")
    @classmethod
    def _check_pagination(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in PAGINATION_MODES:
            raise ValueError(f"pagination must be one of {PAGINATION_MODES}, got '{value}'")
        return value

    @field_validator("key_format")
    @classmethod
    def _check_key_format(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in KEY_FORMATS:
            raise ValueError(f"key_format must be one of {KEY_FORMATS}, got '{value}'")
        return value

    @property
    def db_path(self) -> str:
        """Location of the SQLite file, or ':memory:'."""
        if self.db_dir == ":memory:":
            return ":memory:"
        return os.path.join(self.db_dir, f"{self.db_name}.db")


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_statuses(raw: str) -> List[int]:
    return [int(part) for part in raw.split(",") if part.strip()]


_ENV_MAP = {
    "CHANGEWATCH_API_URL": ("api_url", str),
    "CHANGEWATCH_APP_KEY": ("app_key", str),
    "CHANGEWATCH_DB_DIR": ("db_dir", str),
    "CHANGEWATCH_DB_NAME": ("db_name", str),
    "CHANGEWATCH_FETCH_WORKERS": ("fetch_workers", int),
    "CHANGEWATCH_DETECT_WORKERS": ("detect_workers", int),
    "CHANGEWATCH_QUEUE_SIZE": ("queue_size", int),
    "CHANGEWATCH_HTTP_TIMEOUT": ("http_timeout", float),
    "CHANGEWATCH_PAGINATION": ("pagination", str),
    "CHANGEWATCH_END_STATUSES": ("end_statuses", _parse_statuses),
    "CHANGEWATCH_TREAT_ERRORS_AS_END": ("treat_errors_as_end", _parse_bool),
    "CHANGEWATCH_KEY_FORMAT": ("key_format", str),
}


def load_settings(env: Optional[dict] = None, **overrides) -> Settings:
    """Build Settings from environment variables plus explicit overrides.

    Overrides whose value is None are ignored, so argparse namespaces can be
    passed straight through.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    values = {}
    for var, (field, convert) in _ENV_MAP.items():
        raw = env.get(var)
        if raw is not None and raw != "":
            values[field] = convert(raw)

    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
