"""Error taxonomy shared by the store, repository, service and providers.

レイヤ横断で使う例外を一か所にまとめる。HTTP 層はこれらをステータスコードへ
写像するだけで、個別のメッセージ組み立ては行わない。
"""

from __future__ import annotations


class LingoLogError(Exception):
    """Base class for all domain errors."""


class ValidationError(LingoLogError):
    """Input rejected before it reaches the store (e.g. an empty term)."""


class StoreError(LingoLogError):
    """Read or write failure reported by the underlying persistence."""


class NotFoundError(LingoLogError):
    """Operation targeted an id that is no longer present."""

    def __init__(self, item_id: str, kind: str = "review item") -> None:
        super().__init__(f"{kind} not found: {item_id}")
        self.item_id = item_id
        self.kind = kind


class ProviderError(LingoLogError):
    """Failure from an external collaborator, tagged with a reason code."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or reason)
        self.reason = reason


class TranslationError(ProviderError):
    """Translation provider failure.

    reason: missing_api_key | invalid_proxy_url | auth | network | bad_response
    """


class StoryGenerationError(ProviderError):
    """Story provider failure.

    reason: missing_api_key | api_error | decoding_error
    """
