"""Concrete messaging and server-command backends."""
from __future__ import annotations

import json
import logging
import time
from typing import Optional

import paho.mqtt.client as mqtt
import requests

from dispatchers import Endpoint, parse_endpoint

LOGGER = logging.getLogger("redirector.capabilities")


class LogMessenger:
    """Dry-run messenger: records the invite in the log and reports success."""

    def notify(self, actor: str, message: str) -> bool:
        LOGGER.info("invite (log only)", extra={"actor": actor, "text": message})
        return True


class WebhookMessenger:
    """Deliver invites by POSTing to an HTTP messaging relay."""

    def __init__(
        self,
        url: str,
        timeout_sec: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url:
            raise ValueError("webhook messenger requires a url")
        self._url = url
        self._timeout = timeout_sec
        self._session = session or requests.Session()

    def notify(self, actor: str, message: str) -> bool:
        resp = self._session.post(
            self._url,
            json={"gamertag": actor, "message": message},
            timeout=self._timeout,
        )
        if 200 <= resp.status_code < 300:
            return True
        LOGGER.warning("webhook rejected invite", extra={"actor": actor, "status": resp.status_code})
        return False


class MqttCommandBridge:
    """Publish server commands for the game-side script to execute.

    The client is shared with the service and may be called from the paho
    network thread, so this never blocks on publish acknowledgement.
    """

    def __init__(self, client: mqtt.Client, topic: str, qos: int = 1) -> None:
        self._client = client
        self._topic = topic
        self._qos = qos

    def execute(self, actor: str, command: str) -> bool:
        payload = {"actor": actor, "command": command, "ts": time.time()}
        LOGGER.debug("publishing server command", extra={"actor": actor, "command": command})
        info = self._client.publish(self._topic, json.dumps(payload), qos=self._qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            LOGGER.warning("command publish failed", extra={"actor": actor, "rc": info.rc})
            return False
        return True

    def translate(self, endpoint: str) -> Endpoint:
        return parse_endpoint(endpoint)


__all__ = ["LogMessenger", "MqttCommandBridge", "WebhookMessenger"]
