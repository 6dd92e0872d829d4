"""Error taxonomy shared by the upstream adapters and the resolver."""

from __future__ import annotations


class CatalogError(Exception):
    """Base class for every error raised by the catalog core."""

    user_message = "Ошибка загрузки данных. Попробуйте обновить страницу."

    def __init__(self, message: str, *, user_message: str | None = None) -> None:
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class SourceError(CatalogError):
    """A single data source could not produce a payload."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.detail = message


class NetworkError(SourceError):
    """The upstream could not be reached (DNS, refused connection, TLS)."""


class UpstreamTimeout(SourceError):
    """The upstream did not answer within the configured timeout."""


class UpstreamError(SourceError):
    """The upstream answered with a non-2xx status."""

    def __init__(self, source: str, status_code: int, message: str) -> None:
        super().__init__(source, f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.upstream_message = message


class MalformedPayload(SourceError):
    """A 2xx response whose body does not match the expected envelope."""


class EmptyResult(SourceError):
    """A 2xx response carrying no usable records."""


class NotFound(CatalogError):
    """The requested entity does not exist in any consulted source."""

    user_message = "Не найдено."


class NoPlayableSource(CatalogError):
    """The episode exists but has no stream in any quality."""

    user_message = "Видео не найдено."


class ChainExhausted(CatalogError):
    """Every source of a fallback chain failed."""

    def __init__(self, intent: str, failures: list[SourceError], *, user_message: str | None = None) -> None:
        summary = "; ".join(str(failure) for failure in failures) or "no sources configured"
        super().__init__(f"All sources failed for {intent}: {summary}", user_message=user_message)
        self.intent = intent
        self.failures = failures
