"""
Mutation event bus.

Every committed mutation is published once. Subscribers run in registration
order and are isolated from each other: an exception in one is logged and
reported back to the publisher, and delivery continues with the next.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from apptbook.models import ChangeEvent

Subscriber = Callable[[ChangeEvent], None]


@dataclass(frozen=True)
class DeliveryFailure:
    subscriber: Subscriber
    error: Exception


class ChangeBus:
    """Fan-out of ChangeEvents to independent subscribers."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber):
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber):
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def publish(self, event: ChangeEvent) -> list[DeliveryFailure]:
        """Deliver ``event`` to every subscriber; return the failures."""
        failures = []
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                self.logger.error(
                    f"Subscriber {getattr(subscriber, '__qualname__', subscriber)!s} "
                    f"failed on {event.action.value} of {event.record.id}: {e}"
                )
                failures.append(DeliveryFailure(subscriber, e))
        return failures
