"""外部プロバイダ（翻訳・物語生成）の共有インスタンスを管理するパッケージ。"""

from __future__ import annotations

from typing import Any

# 共有キャッシュ: HTTP クライアントを使い回すためプロセス内で1つだけ保持する。
_CLIENT_CACHE: dict[str, Any] = {}


def get_translation_provider() -> "MicrosoftTranslator":
    """設定値から翻訳プロバイダを生成し、以後は同じインスタンスを返す。"""

    provider = _CLIENT_CACHE.get("translation")
    if provider is None:
        provider = MicrosoftTranslator()
        _CLIENT_CACHE["translation"] = provider
    return provider


def get_story_provider() -> "OpenAIStoryProvider":
    provider = _CLIENT_CACHE.get("story")
    if provider is None:
        provider = OpenAIStoryProvider()
        _CLIENT_CACHE["story"] = provider
    return provider


def shutdown_providers() -> None:
    """HTTP クライアントを閉じてキャッシュを空にする。テストでは再初期化に使う。"""

    translator = _CLIENT_CACHE.pop("translation", None)
    if translator is not None:
        translator.close()
    _CLIENT_CACHE.pop("story", None)


from .story import OpenAIStoryProvider, StoryProvider  # noqa: E402
from .translation import MicrosoftTranslator, TranslationProvider  # noqa: E402

__all__ = [
    "MicrosoftTranslator",
    "OpenAIStoryProvider",
    "StoryProvider",
    "TranslationProvider",
    "get_story_provider",
    "get_translation_provider",
    "shutdown_providers",
]
