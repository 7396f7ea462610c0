"""
Alert Sinks
Delivery of low-score alerts to external collaborators

The result aggregator decides when an alert fires; sinks only deliver.
Two sinks ship with AuditWatch:

- LoggingAlertSink: writes a warning to the application log
- WebhookAlertSink: POSTs the event as JSON, signed with HMAC-SHA256

Webhook delivery headers:
    X-AuditWatch-Signature: sha256=<hex digest of the exact body>
    X-AuditWatch-Event: scan.score_below_threshold
    X-AuditWatch-Delivery: <uuid>
"""

import hashlib
import hmac
import logging
import uuid
from typing import Optional, Protocol

import httpx

from ..models.base import FrozenApiModel
from .http_client import HttpClient, RetryPolicy, encode_json

logger = logging.getLogger(__name__)

ALERT_EVENT_TYPE = "scan.score_below_threshold"
SIGNATURE_HEADER = "X-AuditWatch-Signature"


class AlertEvent(FrozenApiModel):
    """Emitted when a scan's score falls below its alert threshold."""

    scan_id: str
    score: int
    threshold: int


class AlertSink(Protocol):
    async def emit(self, event: AlertEvent) -> None:
        ...


class LoggingAlertSink:
    """Default sink: alerts are written to the log."""

    async def emit(self, event: AlertEvent) -> None:
        logger.warning(
            f"Compliance alert: scan {event.scan_id} scored {event.score} (threshold {event.threshold})"
        )


def sign_payload(secret: str, body: str) -> str:
    """
    Generate an HMAC-SHA256 signature for a webhook body.

    Args:
        secret: Shared webhook secret
        body: Exact request body text

    Returns:
        Signature string in format "sha256=<hex_digest>"
    """
    digest = hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, body: str, received_signature: str) -> bool:
    """Constant-time check of a received signature against the body."""
    if not received_signature.startswith("sha256="):
        received_signature = f"sha256={received_signature}"
    return hmac.compare_digest(sign_payload(secret, body), received_signature)


class WebhookAlertSink:
    """
    Delivers alerts to a webhook URL.

    Delivery failures are logged and dropped; alerting never affects the
    outcome of the scan that triggered it.
    """

    def __init__(self, url: str, secret: Optional[str] = None, client: Optional[HttpClient] = None):
        self.url = url
        self.secret = secret
        self.client = client or HttpClient(
            retry_policy=RetryPolicy(max_retries=3, base_delay=1.0, max_delay=30.0),
            timeout=30.0,
            user_agent="AuditWatch-Webhook/1.0",
        )
        if not secret:
            logger.warning("Alert webhook configured without a secret; deliveries will be unsigned")

    async def close(self):
        await self.client.close()

    async def emit(self, event: AlertEvent) -> None:
        body = encode_json(event.model_dump(mode="json", by_alias=True))
        headers = {
            "Content-Type": "application/json",
            "X-AuditWatch-Event": ALERT_EVENT_TYPE,
            "X-AuditWatch-Delivery": str(uuid.uuid4()),
        }
        if self.secret:
            headers[SIGNATURE_HEADER] = sign_payload(self.secret, body)

        try:
            await self.client.post(self.url, headers=headers, content=body)
            logger.info(f"Delivered alert for scan {event.scan_id} to webhook")
        except httpx.HTTPError as e:
            logger.error(f"Alert webhook delivery failed for scan {event.scan_id}: {type(e).__name__}: {e}")


def build_alert_sink(webhook_url: Optional[str], webhook_secret: Optional[str] = None) -> AlertSink:
    """Choose the sink for the configured settings."""
    if webhook_url:
        return WebhookAlertSink(webhook_url, webhook_secret)
    return LoggingAlertSink()
