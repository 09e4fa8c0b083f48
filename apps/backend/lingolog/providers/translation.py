"""Translation provider backed by Microsoft Translator (or a keyless proxy).

プロキシ URL が設定されていればそちらを優先し、`from`/`to` をクエリに付けて
POST する（購読キーを送らない）。未設定なら Translator API を購読キーと
リージョンのヘッダ付きで直接呼ぶ。言語一覧は初回成功時にキャッシュする。
"""

from __future__ import annotations

import threading
from typing import Any, Protocol

import httpx

from ..config import settings
from ..errors import TranslationError
from ..logging import logger
from ..models.translation import Language

API_VERSION = "3.0"


class TranslationProvider(Protocol):
    def translate(self, text: str, source: str, target: str) -> str:  # pragma: no cover
        ...

    def list_languages(self) -> list[Language]:  # pragma: no cover
        ...


class MicrosoftTranslator:
    """Synchronous Translator client; call it from a worker thread in async code."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        proxy_url: str | None = None,
        region: str | None = None,
        endpoint: str | None = None,
        timeout_ms: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.translator_api_key
        self._proxy_url = proxy_url if proxy_url is not None else settings.translator_proxy_url
        self._region = region or settings.translator_region
        self._endpoint = (endpoint or settings.translator_endpoint).rstrip("/")
        timeout_ms = timeout_ms if timeout_ms is not None else settings.translator_timeout_ms
        self._client = httpx.Client(timeout=timeout_ms / 1000.0, transport=transport)
        self._languages: list[Language] = []
        self._languages_lock = threading.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self._proxy_url or self._api_key)

    def close(self) -> None:
        self._client.close()

    # --- request building ---
    def _translate_target(self, source: str, target: str) -> tuple[str, dict[str, str], dict[str, str]]:
        """Return (url, query params, headers) for a translate call."""

        if self._proxy_url:
            try:
                url = httpx.URL(self._proxy_url)
            except (httpx.InvalidURL, TypeError) as exc:
                raise TranslationError("invalid_proxy_url", "translation proxy URL is invalid") from exc
            if url.scheme not in {"http", "https"} or not url.host:
                raise TranslationError("invalid_proxy_url", "translation proxy URL is invalid")
            return str(url), {"from": source, "to": target}, {}

        if not self._api_key:
            raise TranslationError(
                "missing_api_key",
                "translation is unavailable; configure TRANSLATOR_PROXY_URL or TRANSLATOR_API_KEY",
            )
        headers = {
            "Ocp-Apim-Subscription-Key": self._api_key,
            "Ocp-Apim-Subscription-Region": self._region,
        }
        params = {"api-version": API_VERSION, "from": source, "to": target}
        return f"{self._endpoint}/translate", params, headers

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(
                "translation_request_failed",
                error_type=type(exc).__name__,
                error=str(exc)[:200],
            )
            raise TranslationError("network", f"translation request failed: {exc}") from exc
        if response.status_code in (401, 403):
            raise TranslationError("auth", f"translator rejected credentials (HTTP {response.status_code})")
        if not response.is_success:
            logger.warning(
                "translation_bad_status",
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise TranslationError("bad_response", f"HTTP {response.status_code}")
        return response

    # --- public API ---
    def translate(self, text: str, source: str, target: str) -> str:
        url, params, headers = self._translate_target(source, target)
        response = self._send("POST", url, params=params, headers=headers, json=[{"Text": text}])
        try:
            payload = response.json()
            translated = payload[0]["translations"][0]["text"]
        except (ValueError, LookupError, TypeError) as exc:
            raise TranslationError("bad_response", "unexpected translation payload") from exc
        if not isinstance(translated, str):
            raise TranslationError("bad_response", "unexpected translation payload")
        logger.info(
            "translation_complete",
            source=source,
            target=target,
            via="proxy" if self._proxy_url else "translator",
            chars=len(text),
        )
        return translated

    def list_languages(self) -> list[Language]:
        """Translatable languages sorted by English name; cached after first success."""

        with self._languages_lock:
            if self._languages:
                return list(self._languages)

        response = self._send(
            "GET",
            f"{self._endpoint}/languages",
            params={"api-version": API_VERSION, "scope": "translation"},
        )
        try:
            entries = response.json()["translation"]
            languages = [
                Language(
                    code=code,
                    name=detail["name"],
                    native_name=detail.get("nativeName", ""),
                    dir=detail.get("dir", "ltr"),
                )
                for code, detail in entries.items()
            ]
        except (ValueError, LookupError, TypeError, AttributeError) as exc:
            raise TranslationError("bad_response", "unexpected languages payload") from exc
        languages.sort(key=lambda lang: lang.name)

        with self._languages_lock:
            self._languages = languages
        logger.info("translation_languages_loaded", count=len(languages))
        return list(languages)
