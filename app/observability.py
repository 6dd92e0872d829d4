"""Diagnostics hooks reported by the resolution pipeline."""

from __future__ import annotations

import logging
from typing import Protocol

from .errors import SourceError
from .models import SourceKind

logger = logging.getLogger("app.resolution")


class ResolutionObserver(Protocol):
    """Receives one event per attempted source; must not raise."""

    def attempt_failed(self, intent: str, source: SourceKind, error: SourceError) -> None: ...

    def attempt_empty(self, intent: str, source: SourceKind) -> None: ...

    def attempt_succeeded(self, intent: str, source: SourceKind, count: int) -> None: ...

    def chain_exhausted(self, intent: str, failures: int) -> None: ...


class LoggingObserver:
    """Default observer writing resolution events to the standard logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger

    def attempt_failed(self, intent: str, source: SourceKind, error: SourceError) -> None:
        self._logger.warning(
            "%s via %s failed (%s): %s",
            intent,
            source.value,
            error.__class__.__name__,
            error.detail,
        )

    def attempt_empty(self, intent: str, source: SourceKind) -> None:
        self._logger.info("%s via %s returned nothing, falling back", intent, source.value)

    def attempt_succeeded(self, intent: str, source: SourceKind, count: int) -> None:
        self._logger.info("%s resolved via %s (%s items)", intent, source.value, count)

    def chain_exhausted(self, intent: str, failures: int) -> None:
        self._logger.warning("%s exhausted every source (%s failures)", intent, failures)
