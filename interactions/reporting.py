"""
interactions/reporting.py

User-facing outcome notifications for ledger operations.

Every user-initiated ledger mutation reports exactly one success or one
failure through a Reporter. Web requests use the Django messages framework;
everything else falls back to the log.
"""

import logging
from typing import Protocol

from django.contrib import messages

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingReporter:

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.warning(message)


class MessagesReporter:
    """Queues notifications on the request for the next rendered response."""

    def __init__(self, request):
        self.request = request

    def success(self, message: str) -> None:
        messages.success(self.request, message, fail_silently=True)

    def error(self, message: str) -> None:
        messages.error(self.request, message, fail_silently=True)
