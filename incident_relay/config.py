"""
YAML configuration loader.

Reads config.yaml and produces typed StatusPageConfig / WebhookConfig /
RelaySettings objects. Falls back to defaults if the config file is
missing, but the webhook credentials must come from somewhere: the file
or the DINGTALK_WEBHOOK_TOKEN / DINGTALK_SECRET environment variables.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from incident_relay.errors import ConfigInvalid
from incident_relay.models import Config, RelaySettings, StatusPageConfig, WebhookConfig

log = logging.getLogger(__name__)

# Default path: config.yaml next to the project root
_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigInvalid(f"'{name}' must be a mapping")
    return value


def _int(raw: Mapping[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    # bool is an int subclass; "true" is never a valid interval.
    if isinstance(value, bool):
        raise ConfigInvalid(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigInvalid(f"{key} must be an integer, got {value!r}") from None


def validate(config: Config) -> Config:
    """Reject out-of-range values. Raises ConfigInvalid."""
    s = config.settings
    if s.poll_interval_minutes <= 0:
        raise ConfigInvalid("poll_interval_minutes must be greater than 0")
    if not 0 <= s.daily_report_hour_utc <= 23:
        raise ConfigInvalid("daily_report_hour_utc must be between 0 and 23")
    if s.max_incidents <= 0:
        raise ConfigInvalid("max_incidents must be greater than 0")
    if s.active_window_days <= 0:
        raise ConfigInvalid("active_window_days must be greater than 0")
    if not 0 <= s.health_port <= 65535:
        raise ConfigInvalid("health_port must be between 0 and 65535")
    if not config.webhook.webhook_token:
        raise ConfigInvalid("dingtalk.webhook_token must not be empty")
    if not config.webhook.secret:
        raise ConfigInvalid("dingtalk.secret must not be empty")
    if not config.status_page.url:
        raise ConfigInvalid("status_page.url must not be empty")
    return config


def load_config(
    path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Load, merge environment overrides into, and validate the configuration.

    Returns:
        A validated Config.

    Raises:
        ConfigInvalid: if the file is malformed or a value is out of range.
    """
    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ

    raw: Any = {}
    if config_path.exists():
        try:
            with open(config_path, "r") as fh:
                raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigInvalid(f"cannot parse {config_path}: {exc}") from exc
        except OSError as exc:
            raise ConfigInvalid(f"cannot read {config_path}: {exc}") from exc
    else:
        log.warning("Config file not found at %s, using defaults", config_path)

    if not isinstance(raw, Mapping):
        raise ConfigInvalid(f"{config_path} must contain a mapping")

    page_raw = _section(raw, "status_page")
    defaults = StatusPageConfig()
    status_page = StatusPageConfig(
        name=str(page_raw.get("name", defaults.name)),
        url=str(page_raw.get("url", defaults.url)),
    )

    hook_raw = _section(raw, "dingtalk")
    webhook = WebhookConfig(
        webhook_token=environ.get("DINGTALK_WEBHOOK_TOKEN") or str(hook_raw.get("webhook_token") or ""),
        secret=environ.get("DINGTALK_SECRET") or str(hook_raw.get("secret") or ""),
        endpoint=str(hook_raw.get("endpoint", WebhookConfig.endpoint)),
    )

    settings_raw = _section(raw, "settings")
    base = RelaySettings()
    settings = RelaySettings(
        poll_interval_minutes=_int(settings_raw, "poll_interval_minutes", base.poll_interval_minutes),
        daily_report_hour_utc=_int(settings_raw, "daily_report_hour_utc", base.daily_report_hour_utc),
        max_incidents=_int(settings_raw, "max_incidents", base.max_incidents),
        active_window_days=_int(settings_raw, "active_window_days", base.active_window_days),
        log_level=str(settings_raw.get("log_level", base.log_level)).upper(),
        health_port=(
            _int(environ, "PORT", base.health_port)
            if environ.get("PORT")
            else _int(settings_raw, "health_port", base.health_port)
        ),
    )

    return validate(Config(status_page=status_page, webhook=webhook, settings=settings))
