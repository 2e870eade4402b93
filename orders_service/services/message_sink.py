"""Delivery of appended chat messages to whatever transport clients use.

The chat log only appends and lists; pushing a new message to the other
party (socket, webhook, nothing at all for polling clients) is a sink.
"""
import logging

import requests

log = logging.getLogger(__name__)


class MessageSink:
    def publish(self, message: dict) -> None:
        raise NotImplementedError


class LoggingSink(MessageSink):
    """Default sink for polling clients: record the append and do nothing else."""

    def publish(self, message: dict) -> None:
        log.debug("chat message %s appended to order %s", message["id"], message["order_id"])


class WebhookSink(MessageSink):
    def __init__(self, url: str, timeout: float = 5):
        self.url = url
        self.timeout = timeout

    def publish(self, message: dict) -> None:
        try:
            r = requests.post(self.url, json={"event": "chat.message", "message": message},
                              timeout=self.timeout)
            if not r.ok:
                log.warning("chat webhook returned %s", r.status_code)
        except requests.RequestException as e:
            log.warning("chat webhook unreachable: %s", e)


class MemorySink(MessageSink):
    """Keeps published messages in a list; handy for tests and local runs."""

    def __init__(self):
        self.published = []

    def publish(self, message: dict) -> None:
        self.published.append(message)


def sink_from_config(config) -> MessageSink:
    url = config.get("CHAT_WEBHOOK_URL")
    if url:
        return WebhookSink(url, timeout=config.get("HTTP_TIMEOUT", 5))
    return LoggingSink()
