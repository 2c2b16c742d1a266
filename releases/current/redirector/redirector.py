"""MQTT-driven service that redirects invited players when they join."""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Optional

from dependency_guard import check_service_dependencies

LOGGER = logging.getLogger("redirector")


def _report_missing_dependency(module_name: str, message: str) -> None:
    LOGGER.error(message, extra={"dependency": module_name})


check_service_dependencies(_report_missing_dependency)

import paho.mqtt.client as mqtt  # noqa: E402

from capabilities import LogMessenger, MqttCommandBridge, WebhookMessenger  # noqa: E402
from coordinator import Coordinator  # noqa: E402
from dispatchers import InviteDispatcher, MessagingCapability, RedirectDispatcher  # noqa: E402
from event_router import EventRouter, InboundEvent  # noqa: E402
from invite_registry import InviteRegistry  # noqa: E402
from redirect_config import ConfigError, RedirectorConfig, load_config  # noqa: E402
from trigger_classifier import TriggerClassifier  # noqa: E402


def setup_logging() -> None:
    """Configure a JSON-style logger with UTC timestamps."""
    logging.basicConfig(
        level=logging.INFO,
        format='{"ts": "%(asctime)sZ", "level": "%(levelname)s", "service": "%(name)s", "msg": "%(message)s"}',
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logging.Formatter.converter = time.gmtime


def build_messenger(config: RedirectorConfig) -> MessagingCapability:
    if config.messaging.backend == "webhook":
        return WebhookMessenger(config.messaging.webhook_url or "", timeout_sec=config.messaging.timeout_sec)
    return LogMessenger()


class RedirectService:
    def __init__(
        self,
        config: RedirectorConfig,
        client: Optional[mqtt.Client] = None,
        messenger: Optional[MessagingCapability] = None,
    ) -> None:
        self._config = config
        self._topics = config.topics
        self._client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id="bedrock-redirector")
        if config.mqtt.username:
            self._client.username_pw_set(config.mqtt.username, config.mqtt.password or None)
        self._client.on_connect = self._on_connect
        self._client.on_message = self._on_message

        self._coordinator = Coordinator(
            classifier=TriggerClassifier(config.triggers),
            registry=InviteRegistry(ttl_sec=config.invite_ttl_sec),
            invites=InviteDispatcher(messenger or build_messenger(config), config.messaging.invite_message),
            redirects=RedirectDispatcher(MqttCommandBridge(self._client, self._topics.commands), config.commands),
            target_endpoint=config.target_endpoint,
        )
        self._router = EventRouter(
            on_message=self._handle_message_event,
            on_join=self._handle_join_event,
            on_list=self._handle_list_event,
            on_health=self._handle_health_event,
        )

    @property
    def coordinator(self) -> Coordinator:
        return self._coordinator

    def _publish_result(self, result_type: str, body: Dict[str, Any], event: Optional[InboundEvent] = None) -> None:
        payload: Dict[str, Any] = {"type": result_type}
        if event is not None and event.actor is not None:
            payload["actor"] = event.actor
        payload.update(body)
        if event is not None and event.source:
            payload["source"] = event.source
        payload["ts"] = time.time()
        LOGGER.debug("publishing result", extra={"payload": payload})
        self._client.publish(self._topics.results, json.dumps(payload))

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        LOGGER.info("connected to mqtt", extra={"reason_code": reason_code})
        client.subscribe(self._topics.events)
        self._publish_result("HEALTH", {"status": "ok", "target": self._coordinator.target_endpoint})

    def _on_message(self, client, userdata, msg):
        try:
            payload = json.loads(msg.payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.error("invalid payload", extra={"error": str(exc)})
            return
        self._router.dispatch(payload)

    def _handle_message_event(self, event: InboundEvent) -> None:
        LOGGER.info("message received", extra={"actor": event.actor, "source": event.source})
        outcome = self._coordinator.on_message(event.actor or "", event.text or "")
        self._publish_result("MESSAGE_RESULT", outcome.to_dict(), event)

    def _handle_join_event(self, event: InboundEvent) -> None:
        LOGGER.info("player joined", extra={"actor": event.actor, "source": event.source})
        outcome = self._coordinator.on_join(event.actor or "")
        self._publish_result("JOIN_RESULT", outcome.to_dict(), event)

    def _handle_list_event(self, event: InboundEvent) -> None:
        invites = [view.to_dict() for view in self._coordinator.list_pending()]
        self._publish_result("PENDING", {"invites": invites}, event)

    def _handle_health_event(self, event: InboundEvent) -> None:
        self._publish_result("HEALTH", {"status": "ok", "target": self._coordinator.target_endpoint}, event)

    def sweep(self) -> int:
        return len(self._coordinator.sweep_expired())

    def run(self) -> None:
        LOGGER.info(
            "starting redirector loop",
            extra={"target": self._coordinator.target_endpoint, "broker": self._config.mqtt.host},
        )
        self._client.connect(self._config.mqtt.host, self._config.mqtt.port, keepalive=10)
        self._client.loop_start()
        try:
            while True:
                self.sweep()
                time.sleep(self._config.sweep_interval_sec)
        except KeyboardInterrupt:
            LOGGER.info("keyboard interrupt received, shutting down")
        finally:
            self._client.loop_stop()
            self._client.disconnect()


def main() -> None:
    setup_logging()
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
    config_path = os.environ.get("REDIRECTOR_CONFIG", os.path.join(repo_root, "config", "redirector.yaml"))
    schema_path = os.path.join(repo_root, "config", "redirector.schema.json")
    try:
        config = load_config(config_path, schema_path)
        service = RedirectService(config)
    except (ConfigError, ValueError) as exc:
        LOGGER.error("failed to initialise redirector", extra={"error": str(exc)})
        raise SystemExit(1) from exc
    service.run()


if __name__ == "__main__":
    main()
