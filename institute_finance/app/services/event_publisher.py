"""
Finance event publisher.

Emits "balance changed" / "transfer created" style events for an external
notifier (push, in-app inbox, e-mail) to pick up from a Redis channel.
Events are published only after the ledger transaction committed, and a
publishing failure never undoes a ledger mutation.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from institute_finance.app.core.config import settings
from institute_finance.app.core.reliability import CircuitBreaker, CircuitOpenError, events_circuit_breaker

logger = logging.getLogger("institute_finance.events")


class FinanceEvent:
    """Event type constants."""
    TRANSFER_CREATED = "transfer.created"
    TRANSFER_UPDATED = "transfer.updated"
    TRANSFER_DELETED = "transfer.deleted"
    INCOME_CONFIRMED = "income.confirmed"
    INCOME_REJECTED = "income.rejected"
    INCOME_UPDATED = "income.updated"
    INCOME_DELETED = "income.deleted"
    EXPENSE_APPROVED = "expense.approved"
    EXPENSE_REJECTED = "expense.rejected"
    EXPENSE_REIMBURSED = "expense.reimbursed"
    EXPENSE_REIMBURSEMENT_CANCELLED = "expense.reimbursement_cancelled"
    EXPENSE_UPDATED = "expense.updated"
    EXPENSE_DELETED = "expense.deleted"
    BALANCE_CHANGED = "balance.changed"


def _default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class EventPublisher:
    """Publishes finance events to Redis pub/sub behind a circuit breaker."""

    def __init__(
        self,
        redis=None,
        channel: Optional[str] = None,
        breaker: Optional[CircuitBreaker] = None,
        enabled: Optional[bool] = None,
    ):
        self._redis = redis
        self.channel = channel or settings.events_channel
        self.breaker = breaker or events_circuit_breaker
        self.enabled = settings.events_enabled if enabled is None else enabled

    def _client(self):
        if self._redis is None:
            from institute_finance.app.core.redis_client import redis_client
            self._redis = redis_client
        return self._redis

    async def publish(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Publish one event.

        Returns:
            True if handed to Redis, False if skipped or failed (never raises)
        """
        if not self.enabled:
            return False

        message = json.dumps(
            {
                "type": event_type,
                "occurred_at": datetime.now(timezone.utc),
                "payload": payload,
            },
            default=_default,
        )
        try:
            await self.breaker.call(self._client().publish, self.channel, message)
        except CircuitOpenError:
            logger.warning("Event dropped, circuit open", extra={"event_type": event_type})
            return False
        except Exception as exc:
            logger.error("Event publish failed: %s", exc, extra={"event_type": event_type})
            return False

        logger.debug("Event published", extra={"event_type": event_type})
        return True

    async def publish_all(self, events: Iterable[Tuple[str, Dict[str, Any]]]) -> int:
        """Publish a batch of (event_type, payload) pairs. Returns the number delivered."""
        delivered = 0
        for event_type, payload in events:
            if await self.publish(event_type, payload):
                delivered += 1
        return delivered


def balance_events(balances: Dict[int, Decimal]) -> List[Tuple[str, Dict[str, Any]]]:
    """One BALANCE_CHANGED event per holder whose chain moved."""
    return [
        (FinanceEvent.BALANCE_CHANGED, {"holder_id": holder_id, "balance": balance})
        for holder_id, balance in sorted(balances.items())
    ]


# Process-wide publisher used by the API layer
event_publisher = EventPublisher()


def get_event_publisher() -> EventPublisher:
    """FastAPI dependency (overridden in tests)."""
    return event_publisher
