from __future__ import annotations

import copy
import importlib.resources
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, cast

import yaml

from ..internal.paths import get_app_root

CONFIG_ENV_VAR = "ACCESS_MCP_CONFIG"

_CONFIG_FILENAME = "access_mcp.yml"
_DEFAULT_CONFIG_RESOURCE = "default_config.yaml"


class ConfigError(Exception):
    """Raised when the configuration file is malformed or invalid."""


def _load_default_config() -> Dict[str, Any]:
    resource = importlib.resources.files("access_mcp.resources") / _DEFAULT_CONFIG_RESOURCE
    data = yaml.safe_load(resource.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError("default_config.yaml must contain a mapping at the top level")
    return cast(Dict[str, Any], data)


_DEFAULT_CONFIG_DATA: Dict[str, Any] = _load_default_config()


def _default_config_candidates() -> list[Path]:
    candidates: list[Path] = []

    def _add(path: Path) -> None:
        resolved = path.expanduser().resolve(strict=False)
        if resolved not in candidates:
            candidates.append(resolved)

    _add(Path.home() / ".access_mcp" / _CONFIG_FILENAME)
    _add(get_app_root() / "config" / _CONFIG_FILENAME)
    return candidates


@dataclass
class DatabaseConfig:
    default_path: str = ""
    password: str = ""
    system_database_path: str = ""


@dataclass
class OdbcConfig:
    drivers: tuple[str, ...] = (
        "{Microsoft Access Driver (*.mdb, *.accdb)}",
        "{Microsoft Access Driver (*.mdb)}",
    )
    extended_ansi_sql: bool = True


@dataclass
class AutomationConfig:
    prog_id: str = "Access.Application"
    visible: bool = False


@dataclass
class RecoveryConfig:
    version: int = 1
    engine_error_codes: tuple[int, ...] = (0x800ADEB9, 0x800A0BB9)
    engine_error_messages: tuple[str, ...] = ()
    lock_error_messages: tuple[str, ...] = ()


@dataclass
class LimitsConfig:
    execute_sql_max_rows: int = 200
    markdown_max_rows: int = 100


@dataclass
class ServiceConfig:
    host: str = "127.0.0.1"
    port: int = 8766
    auth_token: str = ""


@dataclass
class AppConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    odbc: OdbcConfig = field(default_factory=OdbcConfig)
    automation: AutomationConfig = field(default_factory=AutomationConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    _source_path: Optional[Path] = field(default=None, repr=False, compare=False)

    @property
    def source_path(self) -> Optional[Path]:
        return self._source_path

    def with_source(self, path: Path) -> "AppConfig":
        self._source_path = path
        return self


def _default_dict() -> Dict[str, Any]:
    return copy.deepcopy(_DEFAULT_CONFIG_DATA)


def default_config() -> AppConfig:
    """Return the packaged defaults without reading any user file."""
    return _coerce_config({})


def _resolve_config_path() -> Path:
    env_override = os.environ.get(CONFIG_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser().resolve()
    for candidate in _default_config_candidates():
        if candidate.exists():
            return candidate
    return _default_config_candidates()[0]


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{name} must be a mapping")
    return value


def _coerce_text(value: Any, name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"{name} must be a string")
    return value.strip()


def _coerce_text_list(value: Any, name: str) -> tuple[str, ...]:
    if value is None:
        return tuple()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"{name} must be a list of strings")
    result: list[str] = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            result.append(text)
    return tuple(result)


def _coerce_positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be positive")
    return number


def _coerce_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off", ""):
            return False
    raise ConfigError(f"{name} must be a boolean")


def _coerce_database(section: Dict[str, Any]) -> DatabaseConfig:
    default_path = _coerce_text(section.get("default_path"), "database.default_path")
    if default_path:
        path = Path(default_path).expanduser()
        if path.exists() and path.is_dir():
            raise ConfigError("database.default_path points to a directory, expected file")
    return DatabaseConfig(
        default_path=default_path,
        password=_coerce_text(section.get("password"), "database.password"),
        system_database_path=_coerce_text(section.get("system_database_path"), "database.system_database_path"),
    )


def _coerce_odbc(section: Dict[str, Any]) -> OdbcConfig:
    drivers = _coerce_text_list(section.get("drivers"), "odbc.drivers")
    if not drivers:
        raise ConfigError("odbc.drivers must list at least one driver")
    return OdbcConfig(drivers=drivers, extended_ansi_sql=_coerce_bool(section.get("extended_ansi_sql", True), "odbc.extended_ansi_sql"))


def _coerce_automation(section: Dict[str, Any]) -> AutomationConfig:
    prog_id = _coerce_text(section.get("prog_id", "Access.Application"), "automation.prog_id")
    if not prog_id:
        raise ConfigError("automation.prog_id must be a non-empty string")
    return AutomationConfig(prog_id=prog_id, visible=_coerce_bool(section.get("visible", False), "automation.visible"))


def _coerce_recovery(section: Dict[str, Any]) -> RecoveryConfig:
    codes: list[int] = []
    raw_codes = section.get("engine_error_codes") or []
    if not isinstance(raw_codes, (list, tuple)):
        raise ConfigError("recovery.engine_error_codes must be a list")
    for raw in raw_codes:
        try:
            code = raw if isinstance(raw, int) else int(str(raw).strip(), 0)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"recovery.engine_error_codes: invalid code {raw!r}") from exc
        codes.append(code & 0xFFFFFFFF)
    try:
        version = int(section.get("version", 1))
    except (TypeError, ValueError) as exc:
        raise ConfigError("recovery.version must be an integer") from exc
    return RecoveryConfig(
        version=version,
        engine_error_codes=tuple(codes),
        engine_error_messages=_coerce_text_list(section.get("engine_error_messages"), "recovery.engine_error_messages"),
        lock_error_messages=_coerce_text_list(section.get("lock_error_messages"), "recovery.lock_error_messages"),
    )


def _coerce_limits(section: Dict[str, Any]) -> LimitsConfig:
    return LimitsConfig(
        execute_sql_max_rows=_coerce_positive_int(section.get("execute_sql_max_rows", 200), "limits.execute_sql_max_rows"),
        markdown_max_rows=_coerce_positive_int(section.get("markdown_max_rows", 100), "limits.markdown_max_rows"),
    )


def _coerce_service(section: Dict[str, Any]) -> ServiceConfig:
    host = section.get("host", "127.0.0.1")
    if not isinstance(host, str) or not host.strip():
        raise ConfigError("service.host must be a non-empty string")
    port = _coerce_positive_int(section.get("port", 8766), "service.port")
    if port > 65535:
        raise ConfigError("service.port must be between 1 and 65535")
    return ServiceConfig(
        host=host.strip(),
        port=port,
        auth_token=_coerce_text(section.get("auth_token") or "", "service.auth_token"),
    )


def _coerce_config(raw: Dict[str, Any]) -> AppConfig:
    if not isinstance(raw, dict):
        raise ConfigError("configuration must contain a mapping at the top level")
    base = _default_dict()
    merged: Dict[str, Any] = {}
    for name in set(base) | set(raw):
        section = dict(_section(base, name))
        section.update(_section(raw, name))
        merged[name] = section

    return AppConfig(
        database=_coerce_database(merged.get("database", {})),
        odbc=_coerce_odbc(merged.get("odbc", {})),
        automation=_coerce_automation(merged.get("automation", {})),
        recovery=_coerce_recovery(merged.get("recovery", {})),
        limits=_coerce_limits(merged.get("limits", {})),
        service=_coerce_service(merged.get("service", {})),
    )


def load_config() -> AppConfig:
    path = _resolve_config_path()
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            try:
                raw = yaml.safe_load(handle) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    else:
        raw = {}
    config = _coerce_config(raw)
    config.with_source(path)
    return config


def save_config(config: AppConfig) -> None:
    target = config.source_path or _resolve_config_path()
    data = {
        "database": {
            "default_path": config.database.default_path,
            "password": config.database.password,
            "system_database_path": config.database.system_database_path,
        },
        "odbc": {
            "drivers": list(config.odbc.drivers),
            "extended_ansi_sql": bool(config.odbc.extended_ansi_sql),
        },
        "automation": {
            "prog_id": config.automation.prog_id,
            "visible": bool(config.automation.visible),
        },
        "recovery": {
            "version": int(config.recovery.version),
            "engine_error_codes": [int(c) for c in config.recovery.engine_error_codes],
            "engine_error_messages": list(config.recovery.engine_error_messages),
            "lock_error_messages": list(config.recovery.lock_error_messages),
        },
        "limits": {
            "execute_sql_max_rows": int(config.limits.execute_sql_max_rows),
            "markdown_max_rows": int(config.limits.markdown_max_rows),
        },
        "service": {
            "host": config.service.host,
            "port": int(config.service.port),
            "auth_token": config.service.auth_token,
        },
    }
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)
    config.with_source(target)


__all__ = [
    "CONFIG_ENV_VAR",
    "AppConfig",
    "AutomationConfig",
    "ConfigError",
    "DatabaseConfig",
    "LimitsConfig",
    "OdbcConfig",
    "RecoveryConfig",
    "ServiceConfig",
    "default_config",
    "load_config",
    "save_config",
]
