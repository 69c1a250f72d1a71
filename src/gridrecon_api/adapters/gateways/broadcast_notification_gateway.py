# src/gridrecon_api/adapters/gateways/broadcast_notification_gateway.py
# Copyright (c) GridRecon.
# SPDX-License-Identifier: MIT
"""Adapter Gateway: critical ticket → broadcast service message.

Posts a ``danger`` message targeted at the ticket's zone to the broadcast
service's ``/send`` endpoint:

    {
      "title": "...",
      "content": "...",
      "messageType": "danger",
      "targetMode": "zone",
      "targets": ["<zone_id>"]
    }

Transport errors, 429 and 5xx responses are retried with jittered backoff;
other 4xx responses fail immediately. The triggering request id, when there
is one, travels along as ``X-Request-ID``. Each delivery outcome is counted in
``gridrecon_notifications_total``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx

from gridrecon_api.domain.entities.audit_ticket import AuditTicket
from gridrecon_api.domain.interfaces.gateways.notification_gateway import NotificationGateway
from gridrecon_api.infrastructure.logging.logger import get_json_logger, get_request_id
from gridrecon_api.infrastructure.middleware.request_id import REQUEST_ID_HEADER
from gridrecon_api.infrastructure.observability.metrics import get_notifications_total
from gridrecon_api.infrastructure.resilience.retry import RetryPolicy, retry_async

logger = get_json_logger(__name__)

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def _should_retry(outcome: Exception | httpx.Response) -> bool:
    if isinstance(outcome, httpx.Response):
        return outcome.status_code in _RETRYABLE_STATUS
    return isinstance(outcome, httpx.TransportError)


def _percent(ratio: Decimal | None) -> str:
    if ratio is None:
        return "n/a"
    return f"{(ratio * 100).quantize(Decimal('0.1'))}%"


class BroadcastNotificationGateway(NotificationGateway):
    """Notify zone operators of critical tickets via the broadcast service."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        max_retries: int = 2,
        backoff_base_s: float = 0.2,
        backoff_cap_s: float = 2.0,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: Shared ``httpx.AsyncClient``; its timeout applies per attempt.
            base_url: Broadcast API root, e.g. ``http://broadcast:8080/broadcast``.
            max_retries: Retries after the first attempt.
            backoff_base_s: First backoff interval in seconds.
            backoff_cap_s: Maximum backoff interval in seconds.
        """
        self._client = client
        self._send_url = base_url.rstrip("/") + "/send"
        self._policy = RetryPolicy(total=max_retries, base=backoff_base_s, cap=backoff_cap_s)

    @staticmethod
    def build_message(ticket: AuditTicket) -> dict[str, Any]:
        """Return the broadcast payload announcing ``ticket``."""
        content = (
            f"Suspected energy loss in zone {ticket.zone_name} ({ticket.zone_id}): "
            f"delta {ticket.delta_kwh} kWh ({_percent(ticket.delta_ratio)}), "
            f"estimated loss {ticket.estimated_loss} {ticket.currency}. "
            f"Ticket {ticket.ticket_number} is open for field audit."
        )
        return {
            "title": f"Critical energy loss: {ticket.zone_name}",
            "content": content,
            "messageType": "danger",
            "targetMode": "zone",
            "targets": [ticket.zone_id],
        }

    async def notify_critical_ticket(self, ticket: AuditTicket) -> None:
        """Send the broadcast message.

        Raises:
            httpx.HTTPError: When the service keeps failing or rejects the message.
        """
        payload = self.build_message(ticket)
        request_id = get_request_id()
        headers = {REQUEST_ID_HEADER: request_id} if request_id else None
        counter = get_notifications_total()

        async def _send() -> httpx.Response:
            return await self._client.post(self._send_url, json=payload, headers=headers)

        try:
            resp = await retry_async(_send, policy=self._policy, retry_on=_should_retry)
            resp.raise_for_status()
        except httpx.HTTPError:
            counter.labels(result="failed").inc()
            raise

        counter.labels(result="sent").inc()
        logger.info(
            "notifications.broadcast.sent",
            extra={
                "ticket_id": ticket.ticket_id,
                "zone_id": ticket.zone_id,
                "status_code": resp.status_code,
            },
        )


__all__ = ["BroadcastNotificationGateway"]
