"""Pure functions turning provider payloads into subscription state."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .models import (
    ENTITLING_STATUSES,
    DisplayState,
    SubscriptionSnapshot,
    SubscriptionStatus,
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _from_epoch(value: Any) -> Optional[datetime]:
    if not _is_number(value) or value <= 0:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _object_id(value: Any) -> Optional[str]:
    # Expandable fields arrive either as an id or as the embedded object.
    if isinstance(value, Mapping):
        value = value.get("id")
    return str(value) if value else None


def extract_current_period_end(remote: Optional[Mapping[str, Any]]) -> Optional[datetime]:
    """Return the period end of a provider subscription.

    Some payloads only carry ``current_period_end`` on the subscription items,
    so the first item's value is used when the top-level field is missing.
    """

    if not remote:
        return None

    direct = remote.get("current_period_end")
    if _is_number(direct) and direct > 0:
        return _from_epoch(direct)

    items = remote.get("items")
    data = items.get("data") if isinstance(items, Mapping) else None
    first = data[0] if isinstance(data, list) and data else None
    if isinstance(first, Mapping) and _is_number(first.get("current_period_end")):
        return _from_epoch(first["current_period_end"])
    return None


def snapshot_from_remote(remote: Mapping[str, Any]) -> SubscriptionSnapshot:
    subscription_id = _object_id(remote.get("id"))
    customer_id = _object_id(remote.get("customer"))
    if not subscription_id or not customer_id:
        raise ValueError("subscription payload is missing its id or customer")

    return SubscriptionSnapshot(
        provider_subscription_id=subscription_id,
        provider_customer_id=customer_id,
        status=SubscriptionStatus(remote.get("status")),
        current_period_end=extract_current_period_end(remote),
        cancel_at=_from_epoch(remote.get("cancel_at")),
        cancel_at_period_end=bool(remote.get("cancel_at_period_end")),
    )


def derive_display_state(
    status: SubscriptionStatus,
    current_period_end: Optional[datetime],
    cancel_at: Optional[datetime],
    cancel_at_period_end: bool,
    now: datetime,
) -> DisplayState:
    """Compute entitlement and presentation flags at read time."""

    status = SubscriptionStatus(status)
    canceled = status == SubscriptionStatus.CANCELED
    cancel_scheduled = not canceled and (bool(cancel_at_period_end) or cancel_at is not None)
    past_end = current_period_end is not None and now >= current_period_end
    canceled_display = canceled or (cancel_scheduled and past_end)
    entitled = status in ENTITLING_STATUSES and not canceled_display

    if canceled_display:
        label = "canceled"
    elif cancel_scheduled:
        label = "cancel_scheduled"
    else:
        label = status.value

    return DisplayState(
        cancel_scheduled=cancel_scheduled,
        past_end=past_end,
        canceled_display=canceled_display,
        entitled=entitled,
        label=label,
    )


__all__ = ["derive_display_state", "extract_current_period_end", "snapshot_from_remote"]
