"""
hireledger/bus.py

In-process completion signal bus.

Producers of asynchronous work (e.g. the pre-screening job) publish a named
signal when their write has committed; consumers (the interaction ledger)
subscribe and react. Neither side holds a reference to the other - both are
handed the same CompletionBus instance at construction.

Transport is one django.dispatch.Signal per signal name, so delivery is
synchronous, in registration order, within the publishing call.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from django.dispatch import Signal

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class CompletionSignal:
    """Payload published when an out-of-band job for a candidate finishes."""

    candidate_id: str
    recruiter_id: str
    job_id: str | None = None


class CompletionBus:
    """Named publish/subscribe channel scoped to one process."""

    def __init__(self):
        self._signals: dict[str, Signal] = {}
        self._lock = threading.Lock()

    def _signal(self, name: str) -> Signal:
        with self._lock:
            signal = self._signals.get(name)
            if signal is None:
                signal = self._signals[name] = Signal()
            return signal

    def publish(self, name: str, payload: Any = None) -> None:
        """
        Invoke every handler currently subscribed to `name`.

        Fire-and-forget: a handler that raises is logged and does not stop
        delivery to the handlers registered after it.
        """
        responses = self._signal(name).send_robust(sender=self.__class__, payload=payload)
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    "Signal handler %r failed for signal=%s: %s",
                    receiver, name, response,
                    exc_info=(type(response), response, response.__traceback__),
                )

    def subscribe(self, name: str, handler: Handler) -> Unsubscribe:
        """
        Register `handler` for `name`.

        Returns a callable that deregisters the handler. Calling it more than
        once is harmless.
        """
        signal = self._signal(name)

        def receiver(sender, payload=None, **kwargs):
            handler(payload)

        signal.connect(receiver, weak=False)

        def unsubscribe() -> None:
            signal.disconnect(receiver)

        return unsubscribe

    def subscriber_count(self, name: str) -> int:
        with self._lock:
            signal = self._signals.get(name)
        return len(signal.receivers) if signal is not None else 0
