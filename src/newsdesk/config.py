from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from typing import Any

import yaml


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class AppConfig:
    name: str
    timezone: str


@dataclass(frozen=True)
class PathsConfig:
    data_dir: str
    state_db: str


@dataclass(frozen=True)
class FetchConfig:
    timeout_seconds: int
    probe_timeout_seconds: int
    user_agent: str
    max_retries: int
    backoff_seconds: float


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: int


@dataclass(frozen=True)
class SearchConfig:
    candidate_limit: int


@dataclass(frozen=True)
class SyncConfig:
    default_max_age_minutes: int
    interval_minutes: int
    retention_days: int


@dataclass(frozen=True)
class LlmConfig:
    enabled: bool
    base_url: str
    model: str
    timeout_seconds: int
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class UrlNormalizationConfig:
    strip_tracking_params: bool
    tracking_params: list[str]


@dataclass(frozen=True)
class HttpConfig:
    host: str
    port: int


@dataclass(frozen=True)
class Config:
    app: AppConfig
    paths: PathsConfig
    fetch: FetchConfig
    cache: CacheConfig
    search: SearchConfig
    sync: SyncConfig
    llm: LlmConfig
    url_normalization: UrlNormalizationConfig
    http: HttpConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "app": {
        "name": "newsdesk",
        "timezone": "local",
    },
    "paths": {
        "data_dir": "/data",
        "state_db": "/data/newsdesk.sqlite3",
    },
    "fetch": {
        "timeout_seconds": 20,
        "probe_timeout_seconds": 5,
        "user_agent": "newsdesk/0.1",
        "max_retries": 1,
        "backoff_seconds": 1.0,
    },
    "cache": {
        "ttl_seconds": 300,
    },
    "search": {
        "candidate_limit": 1000,
    },
    "sync": {
        "default_max_age_minutes": 30,
        "interval_minutes": 30,
        "retention_days": 30,
    },
    "llm": {
        "enabled": False,
        "base_url": "",
        "model": "gpt-4o-mini",
        "timeout_seconds": 30,
        "temperature": 0.3,
        "max_tokens": 1000,
    },
    "url_normalization": {
        "strip_tracking_params": True,
        "tracking_params": [
            "utm_source",
            "utm_medium",
            "utm_campaign",
            "utm_term",
            "utm_content",
        ],
    },
    "http": {
        "host": "0.0.0.0",
        "port": 3000,
    },
}


def get_config_path(explicit: str | None = None) -> str | None:
    if explicit:
        return explicit
    value = os.environ.get("NEWSDESK_CONFIG_PATH", "").strip()
    return value or None


def load_config(path: str | None = None) -> Config:
    cfg = _deep_copy(DEFAULT_CONFIG)
    path = get_config_path(path)
    if path:
        cfg = merge_config(cfg, _read_yaml(path))
    _apply_env_overrides(cfg)
    errors = validate_config(cfg)
    if errors:
        raise ConfigError("Invalid config: " + "; ".join(errors))
    return build_config(cfg)


def config_from_dict(overrides: dict[str, Any]) -> Config:
    cfg = merge_config(_deep_copy(DEFAULT_CONFIG), overrides)
    errors = validate_config(cfg)
    if errors:
        raise ConfigError("Invalid config: " + "; ".join(errors))
    return build_config(cfg)


def load_sources_file(path: str) -> list[dict[str, Any]]:
    data = _read_yaml(path)
    sources = data.get("sources") if isinstance(data, dict) else data
    if not isinstance(sources, list):
        raise ConfigError(f"{path}: expected a list under 'sources'")
    parsed: list[dict[str, Any]] = []
    for index, item in enumerate(sources):
        if not isinstance(item, dict):
            raise ConfigError(f"{path}: sources[{index}] must be a mapping")
        if not item.get("name") or not item.get("url"):
            raise ConfigError(f"{path}: sources[{index}] requires name and url")
        parsed.append(dict(item))
    return parsed


def _read_yaml(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    return data or {}


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    data_dir = os.environ.get("NEWSDESK_DATA_DIR", "").strip()
    if data_dir:
        cfg["paths"]["data_dir"] = data_dir
        cfg["paths"]["state_db"] = os.path.join(data_dir, "newsdesk.sqlite3")
    base_url = os.environ.get("NEWSDESK_LLM_BASE_URL", "").strip()
    if base_url:
        cfg["llm"]["base_url"] = base_url
        cfg["llm"]["enabled"] = True


def merge_config(base: dict[str, Any], overrides: Any) -> dict[str, Any]:
    if not isinstance(overrides, dict):
        raise ConfigError("config must be a mapping")
    merged = _deep_copy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config", errors)
    return errors


def _validate_dict(value: dict[str, Any], schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema.keys():
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value.keys():
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key not in value:
            continue
        _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        if not isinstance(value, dict):
            errors.append(f"{path} must be an object")
            return
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, list):
        if not isinstance(value, list):
            errors.append(f"{path} must be a list")
            return
        for item in value:
            if not isinstance(item, str):
                errors.append(f"{path} must be a list of strings")
                break
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{path} must be an integer")
        elif value < 0:
            errors.append(f"{path} must not be negative")
        return
    if isinstance(default, float):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            errors.append(f"{path} must be a number")
        return
    if isinstance(default, str):
        if not isinstance(value, str):
            errors.append(f"{path} must be a string")
        return


def build_config(cfg: dict[str, Any]) -> Config:
    app_cfg = cfg["app"]
    paths_cfg = cfg["paths"]
    fetch_cfg = cfg["fetch"]
    sync_cfg = cfg["sync"]
    llm_cfg = cfg["llm"]
    url_cfg = cfg["url_normalization"]

    return Config(
        app=AppConfig(name=str(app_cfg["name"]), timezone=str(app_cfg["timezone"])),
        paths=PathsConfig(
            data_dir=str(paths_cfg["data_dir"]),
            state_db=str(paths_cfg["state_db"]),
        ),
        fetch=FetchConfig(
            timeout_seconds=int(fetch_cfg["timeout_seconds"]),
            probe_timeout_seconds=int(fetch_cfg["probe_timeout_seconds"]),
            user_agent=str(fetch_cfg["user_agent"]),
            max_retries=int(fetch_cfg["max_retries"]),
            backoff_seconds=float(fetch_cfg["backoff_seconds"]),
        ),
        cache=CacheConfig(ttl_seconds=int(cfg["cache"]["ttl_seconds"])),
        search=SearchConfig(candidate_limit=int(cfg["search"]["candidate_limit"])),
        sync=SyncConfig(
            default_max_age_minutes=int(sync_cfg["default_max_age_minutes"]),
            interval_minutes=int(sync_cfg["interval_minutes"]),
            retention_days=int(sync_cfg["retention_days"]),
        ),
        llm=LlmConfig(
            enabled=bool(llm_cfg["enabled"]),
            base_url=str(llm_cfg["base_url"]),
            model=str(llm_cfg["model"]),
            timeout_seconds=int(llm_cfg["timeout_seconds"]),
            temperature=float(llm_cfg["temperature"]),
            max_tokens=int(llm_cfg["max_tokens"]),
        ),
        url_normalization=UrlNormalizationConfig(
            strip_tracking_params=bool(url_cfg["strip_tracking_params"]),
            tracking_params=list(url_cfg["tracking_params"]),
        ),
        http=HttpConfig(host=str(cfg["http"]["host"]), port=int(cfg["http"]["port"])),
    )


def _deep_copy(value: dict[str, Any]) -> dict[str, Any]:
    return copy.deepcopy(value)
