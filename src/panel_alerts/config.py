"""Config file loading and auto-discovery for panel-alerts.

Searches for ``panel-alerts.yaml`` in the current directory and parent
directories, parses it, resolves relative paths against the config file's
location, then applies ``PANEL_ALERTS_<FIELD>`` environment overrides.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "panel-alerts.yaml"
ENV_PREFIX = "PANEL_ALERTS_"
PATH_FIELDS = ("db_path", "metrics_file")


@dataclass(frozen=True)
class AlertsConfig:
    """Parsed panel-alerts configuration.

    All fields except ``config_path`` can be overridden via environment
    variables prefixed with ``PANEL_ALERTS_`` (e.g.
    ``PANEL_ALERTS_EVALUATION_INTERVAL_SECONDS=30``).
    """

    config_path: Path | None = None
    db_path: str = "panel-alerts.db"
    metrics_file: str | None = None
    evaluation_interval_seconds: int = 60
    metric_timeout_seconds: float = 5.0
    channel_timeout_seconds: float = 10.0
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_username: str | None = None
    smtp_password: str | None = None
    mail_from: str | None = None
    api_host: str = "127.0.0.1"
    api_port: int = 8430
    log_level: str = "INFO"

    def with_env(self, environ: dict[str, str] | None = None) -> AlertsConfig:
        """Return a copy with ``PANEL_ALERTS_*`` overrides applied."""
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for fld in dataclasses.fields(self):
            if fld.name == "config_path":
                continue
            val = env.get(f"{ENV_PREFIX}{fld.name.upper()}")
            if val is None:
                continue
            if fld.name in PATH_FIELDS:
                base = self.config_path.parent if self.config_path else Path.cwd()
                overrides[fld.name] = _resolve_path(base, val)
            else:
                overrides[fld.name] = _convert(fld.type, val)
        return dataclasses.replace(self, **overrides)


def _resolve_path(base: Path, value: str) -> str:
    return str((base / value).resolve())


def _convert(fld_type: Any, val: str) -> Any:
    if fld_type == "int":
        return int(val)
    if fld_type == "float":
        return float(val)
    if fld_type == "bool":
        return val.lower() in ("1", "true", "yes")
    return val


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``panel-alerts.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
    environ: dict[str, str] | None = None,
) -> AlertsConfig:
    """Load a panel-alerts config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Defaults.

    Environment overrides are applied on top in every case.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    config = AlertsConfig() if config_path is None else _parse_config(config_path)
    return config.with_env(environ)


def _parse_config(config_path: Path) -> AlertsConfig:
    """Read and parse a YAML config file, resolving relative paths."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    known = {f.name for f in dataclasses.fields(AlertsConfig)} - {"config_path"}
    unknown = sorted(set(data) - known)
    if unknown:
        msg = f"Unknown config keys in {config_path}: {', '.join(unknown)}"
        raise ValueError(msg)

    kwargs: dict[str, Any] = {k: v for k, v in data.items() if v is not None}
    for key in PATH_FIELDS:
        if key in kwargs:
            kwargs[key] = _resolve_path(config_path.parent, kwargs[key])

    return AlertsConfig(config_path=config_path, **kwargs)
