"""Runtime configuration loader (config-first, flag-overrides)."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from edge_ingest.sports import DEFAULT_SPORTS, parse_sports
from edge_ingest.util.parsing import safe_float, safe_int

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "runtime.toml"
DEFAULT_LOCAL_OVERRIDE_PATH = Path(__file__).resolve().parents[2] / "config" / "runtime.local.toml"


@dataclass(frozen=True)
class RuntimeConfig:
    """Materialized runtime configuration."""

    config_path: Path
    data_dir: Path
    odds_api_base_url: str
    odds_api_timeout_s: float
    x_api_base_url: str
    x_api_timeout_s: float
    default_max_credits: int
    default_sports: tuple[str, ...]
    odds_delay_s: float
    social_delay_s: float
    social_batch_size: int
    social_max_calls: int
    posts_per_source: int
    retry_max_attempts: int
    retry_base_delay_s: float
    retry_max_delay_s: float

    def with_path_overrides(self, *, data_dir: Path | None = None) -> RuntimeConfig:
        """Return copy with an explicit CLI data directory applied."""
        if data_dir is None:
            return self
        return replace(self, data_dir=data_dir.expanduser().resolve())


def default_runtime_config() -> RuntimeConfig:
    """Built-in defaults, used when no config file exists."""
    return _materialize({}, source=DEFAULT_CONFIG_PATH, base_dir=Path.cwd())


_CURRENT_RUNTIME_CONFIG: RuntimeConfig | None = None


def set_current_runtime_config(config: RuntimeConfig | None) -> None:
    global _CURRENT_RUNTIME_CONFIG
    _CURRENT_RUNTIME_CONFIG = config


def current_runtime_config() -> RuntimeConfig:
    config = _CURRENT_RUNTIME_CONFIG
    if config is not None:
        return config
    if DEFAULT_CONFIG_PATH.exists():
        loaded = load_runtime_config()
    else:
        loaded = default_runtime_config()
    set_current_runtime_config(loaded)
    return loaded


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in overlay.items():
        existing = out.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            out[key] = _deep_merge(existing, value)
        else:
            out[key] = value
    return out


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        payload = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuntimeError(f"failed reading runtime config: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise RuntimeError(f"invalid runtime config TOML: {path}") from exc
    if not isinstance(payload, dict):
        raise RuntimeError(f"runtime config root must be a table: {path}")
    return payload


def _section(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key) or {}
    if not isinstance(value, dict):
        raise RuntimeError(f"runtime config section [{key}] must be a table")
    return value


def _text(value: Any, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _count(table: dict[str, Any], key: str, *, default: int, minimum: int = 1) -> int:
    raw = table.get(key)
    if raw is None:
        return default
    parsed = safe_int(raw)
    if parsed is None or parsed < minimum:
        raise RuntimeError(f"runtime config {key} must be an integer >= {minimum}, got {raw!r}")
    return parsed


def _seconds(table: dict[str, Any], key: str, *, default: float) -> float:
    raw = table.get(key)
    if raw is None:
        return default
    parsed = safe_float(raw)
    if parsed is None or parsed < 0:
        raise RuntimeError(f"runtime config {key} must be a non-negative number, got {raw!r}")
    return parsed


def _sports(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, str):
        parsed = parse_sports(raw)
    elif isinstance(raw, list):
        parsed = parse_sports(",".join(str(item) for item in raw))
    else:
        parsed = list(DEFAULT_SPORTS)
    return tuple(parsed)


def _resolve_path(raw: Any, *, default: str, base_dir: Path) -> Path:
    path = Path(_text(raw, default=default)).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def _materialize(payload: dict[str, Any], *, source: Path, base_dir: Path) -> RuntimeConfig:
    paths = _section(payload, "paths")
    odds_api = _section(payload, "odds_api")
    x_api = _section(payload, "x_api")
    runs = _section(payload, "runs")
    retry = _section(payload, "retry")

    return RuntimeConfig(
        config_path=source,
        data_dir=_resolve_path(paths.get("data_dir"), default="data", base_dir=base_dir),
        odds_api_base_url=_text(
            odds_api.get("base_url"), default="https://api.the-odds-api.com/v4"
        ),
        odds_api_timeout_s=_seconds(odds_api, "timeout_s", default=20.0),
        x_api_base_url=_text(x_api.get("base_url"), default="https://api.twitter.com/2"),
        x_api_timeout_s=_seconds(x_api, "timeout_s", default=15.0),
        default_max_credits=_count(odds_api, "default_max_credits", default=15000, minimum=0),
        default_sports=_sports(runs.get("sports")),
        odds_delay_s=_seconds(runs, "odds_delay_s", default=1.0),
        social_delay_s=_seconds(runs, "social_delay_s", default=2.0),
        social_batch_size=_count(runs, "social_batch_size", default=5),
        social_max_calls=_count(runs, "social_max_calls", default=50, minimum=0),
        posts_per_source=_count(runs, "posts_per_source", default=50),
        retry_max_attempts=_count(retry, "max_attempts", default=4),
        retry_base_delay_s=_seconds(retry, "base_delay_s", default=60.0),
        retry_max_delay_s=_seconds(retry, "max_delay_s", default=600.0),
    )


def load_runtime_config(config_path: Path | None = None) -> RuntimeConfig:
    """Load runtime config from `config/runtime.toml` plus optional local override."""
    source = (config_path or DEFAULT_CONFIG_PATH).expanduser().resolve()
    if not source.exists():
        raise RuntimeError(f"runtime config file not found: {source}")

    payload = _read_toml(source)
    if source == DEFAULT_CONFIG_PATH and DEFAULT_LOCAL_OVERRIDE_PATH.exists():
        payload = _deep_merge(payload, _read_toml(DEFAULT_LOCAL_OVERRIDE_PATH))
    # Relative paths resolve against the repo root for the shipped config.
    base_dir = source.parent.parent if source == DEFAULT_CONFIG_PATH else source.parent
    return _materialize(payload, source=source, base_dir=base_dir)
