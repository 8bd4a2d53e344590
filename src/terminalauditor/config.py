"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, cast

from terminalauditor.supervisor.models import VALID_AUTONOMY, Autonomy

Mode = Literal["passive", "active"]
VALID_MODES: set[Mode] = {"passive", "active"}

DEFAULT_AUDITOR_MODEL = "sonnet"
DEFAULT_MAX_BUDGET = 1.0
DEFAULT_CHUNK_INTERVAL = 30
DEFAULT_OUTPUT_PATH = "./audit-report.md"
DEFAULT_REVIEW_TIMEOUT = 60.0


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def default_log_path() -> str:
    return f"/tmp/terminal-audit-{os.getpid()}.log"


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from config files and environment variables."""

    autonomy: Autonomy = "supervised"
    mode: Mode = "passive"
    focus_areas: list[str] = field(default_factory=list)
    auditor_model: str = DEFAULT_AUDITOR_MODEL
    max_budget: float = DEFAULT_MAX_BUDGET
    chunk_interval: int = DEFAULT_CHUNK_INTERVAL
    output_path: str = DEFAULT_OUTPUT_PATH
    log_path: str = field(default_factory=default_log_path)
    verbose: bool = False
    generate_report: bool = True
    worker_command: str = "claude"
    reviewer_command: str = "claude"
    review_timeout: float = DEFAULT_REVIEW_TIMEOUT

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        reviewer_from_file = file_config.get("reviewer")
        reviewer_config = reviewer_from_file if isinstance(reviewer_from_file, dict) else {}

        return cls(
            autonomy=_to_autonomy(
                os.getenv("TERMINALAUDITOR_AUTONOMY")
                or _to_optional_string(file_config.get("autonomy"))
            ),
            mode=_to_mode(
                os.getenv("TERMINALAUDITOR_MODE") or _to_optional_string(file_config.get("mode"))
            ),
            focus_areas=_to_focus_areas(
                os.getenv("TERMINALAUDITOR_FOCUS") or file_config.get("focus_areas")
            ),
            auditor_model=(
                os.getenv("TERMINALAUDITOR_AUDITOR_MODEL")
                or _to_optional_string(reviewer_config.get("model"))
                or _to_optional_string(file_config.get("auditor_model"))
                or DEFAULT_AUDITOR_MODEL
            ),
            max_budget=_to_positive_float(
                os.getenv("TERMINALAUDITOR_MAX_BUDGET") or file_config.get("max_budget"),
                default=DEFAULT_MAX_BUDGET,
            ),
            chunk_interval=_to_positive_int(
                os.getenv("TERMINALAUDITOR_CHUNK_INTERVAL") or file_config.get("chunk_interval"),
                default=DEFAULT_CHUNK_INTERVAL,
            ),
            output_path=(
                os.getenv("TERMINALAUDITOR_OUTPUT")
                or _to_optional_string(file_config.get("output_path"))
                or DEFAULT_OUTPUT_PATH
            ),
            log_path=(
                os.getenv("TERMINALAUDITOR_LOG")
                or _to_optional_string(file_config.get("log_path"))
                or default_log_path()
            ),
            verbose=_to_bool(
                os.getenv("TERMINALAUDITOR_VERBOSE"),
                default=bool(file_config.get("verbose", False)),
            ),
            generate_report=_to_bool(
                os.getenv("TERMINALAUDITOR_GENERATE_REPORT"),
                default=bool(file_config.get("generate_report", True)),
            ),
            worker_command=(
                os.getenv("TERMINALAUDITOR_WORKER")
                or _to_optional_string(file_config.get("worker_command"))
                or "claude"
            ),
            reviewer_command=(
                os.getenv("TERMINALAUDITOR_REVIEWER_COMMAND")
                or _to_optional_string(reviewer_config.get("command"))
                or "claude"
            ),
            review_timeout=_to_positive_float(
                os.getenv("TERMINALAUDITOR_REVIEW_TIMEOUT") or reviewer_config.get("timeout"),
                default=DEFAULT_REVIEW_TIMEOUT,
            ),
        )


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value)
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("TERMINALAUDITOR_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config("terminalauditor.config.json")
    local_override = _load_file_config("terminalauditor.config.local.json")
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _to_autonomy(value: str | None) -> Autonomy:
    if value is None:
        return "supervised"
    normalized = value.strip().lower()
    if normalized in VALID_AUTONOMY:
        return cast(Autonomy, normalized)
    return "supervised"


def _to_mode(value: str | None) -> Mode:
    if value is None:
        return "passive"
    normalized = value.strip().lower()
    if normalized in VALID_MODES:
        return cast(Mode, normalized)
    return "passive"


def parse_focus_areas(value: str) -> list[str]:
    """Split a comma-separated focus list, dropping blanks and duplicates."""
    areas: list[str] = []
    for item in value.split(","):
        area = item.strip().lower()
        if area and area not in areas:
            areas.append(area)
    return areas


def _to_focus_areas(value: object) -> list[str]:
    if isinstance(value, str):
        return parse_focus_areas(value)
    if isinstance(value, list):
        return parse_focus_areas(",".join(item for item in value if isinstance(item, str)))
    return []


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _to_positive_float(value: object, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default
