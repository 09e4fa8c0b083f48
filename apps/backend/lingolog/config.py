from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DB_PATH = ".data/lingolog.sqlite3"
DEFAULT_TRANSLATOR_ENDPOINT = "https://api.cognitive.microsofttranslator.com"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - lingolog_db_path: 単語と学習履歴を保存する SQLite のパス
    - refresh_debounce_ms / delete_grace_period_ms: リポジトリ同期のタイミング定数
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- データ永続化設定 ---
    lingolog_db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to SQLite database for review items / 単語データ用SQLite DBパス",
        validation_alias=AliasChoices("lingolog_db_path", "db_path"),
    )

    # --- リポジトリ同期のタイミング（要チューニング候補。既定値は従来挙動と一致） ---
    refresh_debounce_ms: int = Field(
        default=150,
        description=(
            "Quiet window before a burst of store changes triggers one refresh (ms) / "
            "変更通知をまとめてリフレッシュするまでの待機時間(ms)"
        ),
    )
    delete_grace_period_ms: int = Field(
        default=300,
        description=(
            "Wait after batch deletes before lifting refresh suppression (ms) / "
            "一括削除後にリフレッシュ抑止を解除するまでの猶予(ms)"
        ),
    )

    # --- 翻訳プロバイダ（Microsoft Translator またはプロキシ） ---
    translator_api_key: str | None = Field(
        default=None, description="Translator subscription key"
    )
    translator_proxy_url: str | None = Field(
        default=None,
        description="Optional translation proxy URL / 鍵を端末に置かないための翻訳プロキシURL",
    )
    translator_region: str = Field(
        default="eastus",
        description="Translator subscription region / Translator のリージョン",
    )
    translator_endpoint: str = Field(
        default=DEFAULT_TRANSLATOR_ENDPOINT,
        description="Translator API base URL",
    )
    translator_timeout_ms: int = Field(
        default=10000,
        description="Per-request timeout for translation calls (ms) / 翻訳呼出しのタイムアウト(ms)",
    )

    # --- 物語生成（LLM） ---
    openai_api_key: str | None = Field(default=None, description="OpenAI API Key")
    llm_model: str = Field(
        default="gpt-4o-mini",
        description="LLM model name / 利用するLLMモデル名",
    )
    llm_timeout_ms: int = Field(
        default=60000,
        description="Per-attempt timeout for LLM calls (ms) / LLM呼出しの試行毎タイムアウト(ms)",
    )
    story_temperature: float = Field(
        default=0.8,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for story generation / 物語生成の温度",
    )
    story_max_tokens: int = Field(
        default=2048,
        description="Max output tokens for story generation / 物語生成の最大出力トークン数",
    )

    sentry_dsn: str | None = Field(default=None, description="Sentry DSN (enable if set)")

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator(
        "refresh_debounce_ms",
        "delete_grace_period_ms",
        "translator_timeout_ms",
        "llm_timeout_ms",
        mode="after",
    )
    @classmethod
    def _validate_non_negative_ms(cls, value: int) -> int:
        """Reject negative durations.

        なぜ: 負の待機時間はタイマーが即時発火する設定と区別できず、
        一括削除中にリフレッシュが割り込む原因になるため読み込み時に拒否する。
        """

        if value < 0:
            raise ValueError("timing values must be >= 0 milliseconds")
        return value

    @field_validator("translator_proxy_url", mode="before")
    @classmethod
    def _normalise_proxy_url(cls, raw_url: object) -> str | None | object:
        """Trim the proxy URL and treat blank values as unset."""

        if raw_url is None:
            return None
        if not isinstance(raw_url, str):
            return raw_url
        trimmed = raw_url.strip()
        if not trimmed:
            return None
        if not trimmed.startswith(("http://", "https://")):
            raise ValueError("TRANSLATOR_PROXY_URL must start with http:// or https://")
        return trimmed

    @property
    def refresh_debounce_seconds(self) -> float:
        return self.refresh_debounce_ms / 1000.0

    @property
    def delete_grace_period_seconds(self) -> float:
        return self.delete_grace_period_ms / 1000.0


settings = Settings()
