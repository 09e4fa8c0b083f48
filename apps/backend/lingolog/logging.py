"""Structured JSON logging for the LingoLog backend.

ログは1行1イベントの JSON で出力する。このアプリでログに紛れ込みうる秘密は
次の3種類で、いずれもレンダリング前にここでマスクする。

- OpenAI の API キー / Translator の購読キー（設定値として既知のもの）
- 翻訳プロキシ URL のクエリに載った関数キー（`?code=...` など）。httpx の
  例外メッセージには URL がそのまま含まれるため、ネットワーク失敗のログ経由で漏れる
- `api_key` や `authorization` のような名前のフィールドに渡された任意の値
"""

from typing import Any

import logging
import re
import structlog
from structlog import contextvars as structlog_contextvars
from .config import settings


_SENSITIVE_KEYWORDS = ("api_key", "token", "secret", "authorization", "password", "key")
_MASK_PLACEHOLDER = "***"
# プロキシ URL のクエリで秘密を運ぶ代表的なパラメータ名
_SECRET_QUERY_PARAM = re.compile(
    r"([?&](?:code|key|sig|token|subscription-key|api[-_]?key)=)([^&#\s'\"]+)",
    re.IGNORECASE,
)


def _mask_secret_value(raw: object) -> str:
    """Short values become `***`; longer ones keep only their first and last 4 characters."""

    if raw is None:
        return _MASK_PLACEHOLDER
    text = str(raw).strip()
    if len(text) <= 8:
        return _MASK_PLACEHOLDER
    return f"{text[:4]}…{text[-4:]}"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS)


def _configured_secrets() -> tuple[str, ...]:
    return tuple(
        secret
        for secret in (settings.openai_api_key, settings.translator_api_key)
        if secret
    )


def _mask_text(value: str, known_secrets: tuple[str, ...]) -> str:
    """Mask configured secrets and secret-looking URL query values inside free text."""

    masked = value
    for secret in known_secrets:
        masked = masked.replace(secret, _mask_secret_value(secret))
    return _SECRET_QUERY_PARAM.sub(lambda m: m.group(1) + _MASK_PLACEHOLDER, masked)


def _sanitize_event_dict(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog processor: mask secrets in every field except the event name itself.

    イベント名は `translator_key_missing` のように "key" を含むことがあるため
    フィールド名による全体マスクの対象外とし、本文中の秘密だけを置換する。
    ネストした dict も再帰的に処理する。
    """

    known_secrets = _configured_secrets()

    def _sanitize_value(value: Any, key_hint: str) -> Any:
        if isinstance(value, dict):
            return {k: _sanitize_value(v, str(k)) for k, v in value.items()}
        if _is_sensitive_key(key_hint):
            return _mask_secret_value(_mask_text(value, known_secrets) if isinstance(value, str) else value)
        if isinstance(value, str):
            return _mask_text(value, known_secrets)
        return value

    for key, value in list(event_dict.items()):
        if key == "event":
            if isinstance(value, str):
                event_dict[key] = _mask_text(value, known_secrets)
            continue
        event_dict[key] = _sanitize_value(value, str(key))
    return event_dict


def configure_logging() -> None:
    """Route stdlib logging and structlog to one JSON line per event.

    uvicorn などが先に設定したハンドラは force=True で置き換え、
    `INFO:uvicorn:` のような接頭辞が JSON の前に付かないようにする。
    `request_id` はミドルウェアが contextvars に束縛したものを自動で付与する。
    """

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog_contextvars.merge_contextvars,
            _sanitize_event_dict,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )

    if settings.sentry_dsn:
        _init_sentry(settings.sentry_dsn)


def _init_sentry(dsn: str) -> None:
    """Forward ERROR logs to Sentry when the optional SDK is installed."""

    try:
        import sentry_sdk  # type: ignore
        from sentry_sdk.integrations.logging import LoggingIntegration  # type: ignore
    except ImportError:
        logger.warning("sentry_sdk_unavailable", reason="not_installed")
        return

    sentry_logging = LoggingIntegration(
        level=logging.INFO,
        event_level=logging.ERROR,
    )
    sentry_sdk.init(dsn=dsn, integrations=[sentry_logging])


logger = structlog.get_logger()
