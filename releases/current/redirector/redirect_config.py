"""Configuration loading for the redirect service."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml
from jsonschema import ValidationError, validate

from dispatchers import (
    COMMAND_FIELDS,
    DEFAULT_INVITE_MESSAGE,
    DEFAULT_REDIRECT_COMMANDS,
    INVITE_FIELDS,
    InvalidInput,
    check_template,
    parse_endpoint,
)
from trigger_classifier import DEFAULT_TRIGGER_TOKENS


class ConfigError(Exception):
    """Raised when the config file cannot be parsed or validated."""


@dataclass
class MqttSettings:
    host: str = "127.0.0.1"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None


@dataclass
class TopicSettings:
    events: str = "redirect/events"
    results: str = "redirect/results"
    commands: str = "redirect/commands"


@dataclass
class MessagingSettings:
    backend: str = "log"
    webhook_url: Optional[str] = None
    timeout_sec: float = 5.0
    invite_message: str = DEFAULT_INVITE_MESSAGE


@dataclass
class RedirectorConfig:
    target_host: str
    target_port: int
    invite_ttl_sec: float = 300.0
    sweep_interval_sec: float = 5.0
    mqtt: MqttSettings = field(default_factory=MqttSettings)
    topics: TopicSettings = field(default_factory=TopicSettings)
    messaging: MessagingSettings = field(default_factory=MessagingSettings)
    triggers: List[str] = field(default_factory=lambda: list(DEFAULT_TRIGGER_TOKENS))
    commands: List[str] = field(default_factory=lambda: list(DEFAULT_REDIRECT_COMMANDS))

    @property
    def target_endpoint(self) -> str:
        return f"{self.target_host}:{self.target_port}"


def load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(
    config_path: str,
    schema_path: str,
    environ: Optional[Mapping[str, str]] = None,
) -> RedirectorConfig:
    """Load, validate and apply environment overrides to the service config.

    ``REDIRECT_SERVER_IP`` and ``REDIRECT_SERVER_PORT`` take precedence over
    the ``redirect`` section of the file.
    """
    environ = os.environ if environ is None else environ
    try:
        data = load_yaml(config_path)
        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)
    except OSError as exc:
        raise ConfigError(f"failed to load config: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid config yaml: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid config schema json: {exc}") from exc

    try:
        validate(instance=data, schema=schema)
    except ValidationError as exc:
        raise ConfigError(f"config validation failed: {exc.message}") from exc

    redirect = dict(data.get("redirect") or {})
    if environ.get("REDIRECT_SERVER_IP"):
        redirect["target_host"] = environ["REDIRECT_SERVER_IP"]
    if environ.get("REDIRECT_SERVER_PORT"):
        try:
            redirect["target_port"] = int(environ["REDIRECT_SERVER_PORT"])
        except ValueError as exc:
            raise ConfigError("REDIRECT_SERVER_PORT must be an integer") from exc
    if not redirect.get("target_host") or redirect.get("target_port") is None:
        raise ConfigError("redirect target host and port are required")

    mqtt_cfg = data.get("mqtt") or {}
    topics_cfg = data.get("topics") or {}
    messaging_cfg = data.get("messaging") or {}

    config = RedirectorConfig(
        target_host=str(redirect["target_host"]),
        target_port=int(redirect["target_port"]),
        invite_ttl_sec=float(redirect.get("invite_ttl_sec", 300.0)),
        sweep_interval_sec=float(redirect.get("sweep_interval_sec", 5.0)),
        mqtt=MqttSettings(
            host=mqtt_cfg.get("host", "127.0.0.1"),
            port=int(mqtt_cfg.get("port", 1883)),
            username=mqtt_cfg.get("username") or None,
            password=mqtt_cfg.get("password") or None,
        ),
        topics=TopicSettings(**topics_cfg),
        messaging=MessagingSettings(
            backend=messaging_cfg.get("backend", "log"),
            webhook_url=messaging_cfg.get("webhook_url") or None,
            timeout_sec=float(messaging_cfg.get("timeout_sec", 5.0)),
            invite_message=messaging_cfg.get("invite_message") or DEFAULT_INVITE_MESSAGE,
        ),
        triggers=list(data.get("triggers") or DEFAULT_TRIGGER_TOKENS),
        commands=list(data.get("commands") or DEFAULT_REDIRECT_COMMANDS),
    )

    try:
        parse_endpoint(config.target_endpoint)
    except InvalidInput as exc:
        raise ConfigError(f"invalid redirect target: {exc}") from exc
    try:
        check_template(config.messaging.invite_message, INVITE_FIELDS)
        for command in config.commands:
            check_template(command, COMMAND_FIELDS)
    except InvalidInput as exc:
        raise ConfigError(f"invalid template: {exc}") from exc
    if config.messaging.backend == "webhook" and not config.messaging.webhook_url:
        raise ConfigError("messaging.webhook_url is required for the webhook backend")
    return config


__all__ = [
    "ConfigError",
    "MessagingSettings",
    "MqttSettings",
    "RedirectorConfig",
    "TopicSettings",
    "load_config",
    "load_yaml",
]
