"""
Webhook delegator: routes Stripe events to subscribed listeners.

The delegator is a registry mapping an event name (the Stripe event
type, e.g. "checkout.session.completed") to an ordered list of
listeners. Dispatching an event calls every listener subscribed to its
name, in the order they were subscribed.

Rules:
- The same listener may be subscribed more than once; it is then called
  once per subscription.
- Events with no subscribed listeners are ignored.
- A listener returning a failed ServiceResult does not stop the rest of
  the listeners; the dispatch result reports the failure.
- A listener raising an exception stops dispatch and the exception
  propagates to the caller (the Celery task marks the event failed and
  retries it later). Listeners must therefore be idempotent.

Usage:
    from billing.webhooks.delegator import StripeEvent, delegator

    class FulfillOrderListener:
        def handle(self, event: StripeEvent) -> ServiceResult:
            ...

    delegator.subscribe("checkout.session.completed", FulfillOrderListener())

    @delegator.listener("checkout.session.expired")
    def expire_order(event: StripeEvent) -> ServiceResult:
        ...

    result = delegator.dispatch(StripeEvent.from_payload(event_data))
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol, runtime_checkable

from core.services import ServiceResult


logger = logging.getLogger(__name__)


# =============================================================================
# Event
# =============================================================================


def _freeze(value: Any) -> Any:
    """Return a read-only view of nested dicts and lists."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


@dataclass(frozen=True)
class StripeEvent:
    """
    Immutable Stripe event handed to listeners.

    Attributes:
        id: Stripe Event ID (evt_xxx)
        name: Stripe event type (e.g. "checkout.session.completed")
        payload: Full event payload, frozen on construction
    """

    id: str
    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _freeze(self.payload or {}))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> StripeEvent:
        """
        Build an event from a verified Stripe webhook payload.

        Args:
            payload: Event dict as returned by StripeAdapter.verify_webhook_signature

        Returns:
            StripeEvent keyed by the payload's id and type
        """
        return cls(
            id=payload.get("id", ""),
            name=payload.get("type", ""),
            payload=payload,
        )

    @property
    def data_object(self) -> Mapping[str, Any]:
        """The Stripe object the event is about (data.object)."""
        data = self.payload.get("data") or {}
        return data.get("object") or MappingProxyType({})

    @property
    def payment_status(self) -> str | None:
        """payment_status of the Checkout Session, if the event carries one."""
        return self.data_object.get("payment_status")

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


# =============================================================================
# Listeners
# =============================================================================


@runtime_checkable
class WebhookListener(Protocol):
    """Anything with a handle(event) method can be subscribed."""

    def handle(self, event: StripeEvent) -> ServiceResult | None: ...


class FunctionListener:
    """Adapts a plain function to the WebhookListener protocol."""

    def __init__(self, func: Callable[[StripeEvent], ServiceResult | None]):
        self.func = func
        self.name = getattr(func, "__qualname__", repr(func))

    def handle(self, event: StripeEvent) -> ServiceResult | None:
        return self.func(event)

    def __repr__(self) -> str:
        return f"FunctionListener({self.name})"


def _listener_name(listener: Any) -> str:
    return getattr(listener, "name", None) or type(listener).__name__


# =============================================================================
# Delegator
# =============================================================================


class WebhookDelegator:
    """
    Registry of webhook listeners keyed by event name.

    Subscriptions are normally made once at startup (BillingConfig.ready),
    dispatch happens on every processed webhook.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[WebhookListener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, listener: WebhookListener) -> None:
        """
        Append a listener to the list for event_name.

        Args:
            event_name: Stripe event type to listen to
            listener: Object exposing handle(event)

        Raises:
            TypeError: If listener has no callable handle method
        """
        if not isinstance(listener, WebhookListener) or not callable(listener.handle):
            raise TypeError(
                f"Webhook listener must define handle(event), got {listener!r}"
            )

        with self._lock:
            self._listeners[event_name].append(listener)

        logger.debug(
            f"Subscribed {_listener_name(listener)} to {event_name}",
            extra={"event_type": event_name},
        )

    def listener(self, *event_names: str) -> Callable:
        """
        Decorator subscribing a function to one or more event names.

        Usage:
            @delegator.listener("checkout.session.expired")
            def expire_order(event: StripeEvent) -> ServiceResult:
                ...

        Returns:
            Decorator returning the undecorated function
        """
        if not event_names:
            raise ValueError("At least one event name is required")

        def decorator(func: Callable[[StripeEvent], ServiceResult | None]) -> Callable:
            wrapped = FunctionListener(func)
            for event_name in event_names:
                self.subscribe(event_name, wrapped)
            return func

        return decorator

    def listeners_for(self, event_name: str) -> tuple[WebhookListener, ...]:
        """Return the listeners subscribed to event_name, in order."""
        with self._lock:
            return tuple(self._listeners.get(event_name, ()))

    @property
    def event_names(self) -> list[str]:
        with self._lock:
            return sorted(name for name, items in self._listeners.items() if items)

    def clear(self) -> None:
        """Remove every subscription."""
        with self._lock:
            self._listeners.clear()

    def dispatch(self, event: StripeEvent) -> ServiceResult[dict[str, Any]]:
        """
        Call every listener subscribed to event.name, in order.

        Args:
            event: The event to deliver

        Returns:
            ServiceResult with {"event_type", "handled", "failed"} on success.
            Failure (error_code LISTENER_FAILED) when any listener returned
            a failed ServiceResult; the other listeners still ran. Its
            `errors` maps each failed listener to the error codes it
            returned.

        Raises:
            Exception: Whatever a listener raised; later listeners are skipped.
        """
        listeners = self.listeners_for(event.name)
        log_context = {"stripe_event_id": event.id, "event_type": event.name}

        if not listeners:
            logger.info(
                f"No listeners subscribed for event type: {event.name}",
                extra=log_context,
            )
            return ServiceResult.success(
                {"event_type": event.name, "handled": 0, "failed": []}
            )

        logger.info(
            f"Dispatching {event.name} to {len(listeners)} listener(s)",
            extra=log_context,
        )

        failures: list[dict[str, Any]] = []
        for listener in listeners:
            result = listener.handle(event)
            if isinstance(result, ServiceResult) and not result.success:
                logger.warning(
                    f"Listener {_listener_name(listener)} failed: {result.error}",
                    extra={**log_context, "error_code": result.error_code},
                )
                failures.append(
                    {
                        "listener": _listener_name(listener),
                        "error": result.error,
                        "error_code": result.error_code,
                    }
                )

        if failures:
            error_codes: dict[str, list[str]] = {}
            for f in failures:
                error_codes.setdefault(f["listener"], []).append(
                    f["error_code"] or "LISTENER_FAILED"
                )
            return ServiceResult.failure(
                "; ".join(f"{f['listener']}: {f['error']}" for f in failures),
                error_code="LISTENER_FAILED",
                errors=error_codes,
            )

        return ServiceResult.success(
            {"event_type": event.name, "handled": len(listeners), "failed": []}
        )


# Process-wide delegator used by the webhook pipeline
delegator = WebhookDelegator()
