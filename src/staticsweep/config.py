# src/staticsweep/config.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Mapping, Optional
from dotenv import find_dotenv, dotenv_values
import os
import warnings

from staticsweep.errors import ConfigError

_ENV_PATH = Path(find_dotenv()) if find_dotenv() else None
# Process environment wins over .env so Lambda configuration takes effect.
_ENV = {**(dotenv_values(_ENV_PATH) if _ENV_PATH else {}), **os.environ}

Action = Literal["list", "delete"]
MissingTagPolicy = Literal["fail", "skip"]

ACTIONS: tuple[str, ...] = ("list", "delete")
MISSING_TAG_POLICIES: tuple[str, ...] = ("fail", "skip")

DEFAULT_KNOWN_FOLDERS = (
    "applet/",
    "dist/",
    "dojo/",
    "error/",
    "http_errors/",
    "image/",
    "images/",
)


def _get(var: str, default: str) -> str:
    val = _ENV.get(var)
    return default if val is None or val == "" else str(val)


def _get_int(var: str, default: int, minimum: int = 1) -> int:
    raw = _ENV.get(var)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        warnings.warn(
            f"Env var {var}={raw!r} is not an integer – using default {default}",
            RuntimeWarning,
        )
        return default
    if value < minimum:
        warnings.warn(
            f"Env var {var}={raw!r} is below {minimum} – using default {default}",
            RuntimeWarning,
        )
        return default
    return value


def _get_list(var: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = _ENV.get(var)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    bucket: str = _get("STATICSWEEP_BUCKET", "static-web-np")
    web_root: str = _get("STATICSWEEP_WEB_ROOT", "web/resources/")
    known_folders: tuple[str, ...] = _get_list(
        "STATICSWEEP_KNOWN_FOLDERS", DEFAULT_KNOWN_FOLDERS
    )
    role_tag_value: str = _get("STATICSWEEP_ROLE_TAG", "CoreApp")
    retain_days: int = _get_int("STATICSWEEP_RETAIN_DAYS", 60)
    region: Optional[str] = _ENV.get("AWS_REGION") or None


settings = Settings()


@dataclass(frozen=True, slots=True)
class RetentionConfig:
    """Immutable parameters of a single cleanup invocation."""

    bucket: str
    action: Action = "list"
    retain_days: int = settings.retain_days
    root: str = settings.web_root
    known_folders: tuple[str, ...] = settings.known_folders
    role_tag_value: str = settings.role_tag_value
    missing_tag_policy: MissingTagPolicy = "fail"

    def __post_init__(self) -> None:
        if not self.bucket:
            raise ConfigError("Error: bucket must not be empty")
        if self.action not in ACTIONS:
            raise ConfigError("Error: action needs to be either list or delete")
        # bool is an int subclass; reject it explicitly
        if (
            isinstance(self.retain_days, bool)
            or not isinstance(self.retain_days, int)
            or self.retain_days < 1
        ):
            raise ConfigError(
                f"Error: retainDays must be a positive integer, got {self.retain_days!r}"
            )
        if not self.root or not self.root.endswith("/"):
            raise ConfigError(
                f"Error: deployment root must be non-empty and end with '/': {self.root!r}"
            )
        if self.missing_tag_policy not in MISSING_TAG_POLICIES:
            raise ConfigError(
                "Error: missingTagPolicy needs to be either fail or skip"
            )

    @property
    def deleting(self) -> bool:
        return self.action == "delete"


def config_from_event(event: Optional[Mapping[str, Any]]) -> RetentionConfig:
    """
    Builds a RetentionConfig from a trigger payload such as
    ``{"bucket": "static-web-np", "action": "list", "retainDays": 30}``.

    Absent or ``None`` fields fall back to the configured defaults.
    """
    if event is None:
        raise ConfigError("Error: event is not defined")
    if not isinstance(event, Mapping):
        raise ConfigError(f"Error: event must be an object, got {type(event).__name__}")

    def pick(key: str, default: Any) -> Any:
        value = event.get(key)
        return default if value is None or value == "" else value

    retain_days = pick("retainDays", settings.retain_days)
    # Schedulers often template numbers as strings
    if isinstance(retain_days, str) and retain_days.strip().isdigit():
        retain_days = int(retain_days)
    # JSON templating can turn 30 into 30.0
    elif isinstance(retain_days, float) and retain_days.is_integer():
        retain_days = int(retain_days)

    return RetentionConfig(
        bucket=pick("bucket", settings.bucket),
        action=pick("action", "list"),
        retain_days=retain_days,
        missing_tag_policy=pick("missingTagPolicy", "fail"),
    )
