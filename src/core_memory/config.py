from __future__ import annotations

from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.types import NoDecode


DEFAULT_DB_PATH = ".data/core_memory.sqlite3"
SUPPORTED_MNEMONIC_PROVIDERS = frozenset({"template"})


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - db_path: 連絡先と復習状態を保存する SQLite ファイル
    - review_timezone: 「今日」を判定する基準タイムゾーン
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- データ永続化設定 ---
    db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to SQLite database for contacts / 連絡先用SQLite DBパス",
        validation_alias=AliasChoices("db_path", "core_memory_db_path"),
    )

    # --- 復習スケジュール ---
    review_timezone: str = Field(
        default="UTC",
        description="Reference timezone for calendar-day comparisons / 期日判定の基準タイムゾーン",
    )
    recent_reviews_limit: int = Field(
        default=5,
        description="Number of recent reviews returned by stats / 統計で返す直近レビュー件数",
    )
    max_review_sessions: int = Field(
        default=200,
        description="Upper bound of in-memory review sessions / メモリ上に保持するクイズセッション数の上限",
    )

    # --- 記憶フック生成 ---
    mnemonic_provider: str = Field(
        default="template",
        description="Mnemonic hook provider / 記憶フック生成プロバイダ",
    )
    mnemonic_seed: int | None = Field(
        default=None,
        description="Optional RNG seed for reproducible hooks / フック生成の乱数シード",
    )

    # --- HTTP ---
    host: str = Field(default="127.0.0.1", description="Bind host / 待ち受けホスト")
    port: int = Field(default=8000, description="Bind port / 待ち受けポート")
    allowed_cors_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(),
        description=(
            "Comma separated CORS origins / CORS で許可するオリジンのカンマ区切り一覧"
        ),
        validation_alias=AliasChoices("allowed_cors_origins", "cors_allowed_origins"),
    )

    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN (enable if set)"
    )

    # --- Strict mode ---
    strict_mode: bool = Field(
        default=True,
        description="Fail fast on missing/invalid configuration (disable only for tests)",
    )

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("review_timezone", mode="after")
    @classmethod
    def _validate_review_timezone(cls, value: str) -> str:
        """Reject timezone names that zoneinfo cannot resolve.

        期日判定はこのタイムゾーンの暦日で行うため、解決できない名前は起動時に拒否する。
        """

        name = (value or "").strip()
        if not name:
            raise ValueError("REVIEW_TIMEZONE must be a non-empty IANA timezone name")
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"REVIEW_TIMEZONE is not a known timezone: {name!r}") from exc
        return name

    @field_validator("recent_reviews_limit", "max_review_sessions", mode="after")
    @classmethod
    def _validate_positive(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{(info.field_name or 'value').upper()} must be at least 1")
        return value

    @field_validator("mnemonic_provider", mode="after")
    @classmethod
    def _normalise_mnemonic_provider(cls, value: str) -> str:
        return (value or "").strip().lower()

    @field_validator("allowed_cors_origins", mode="before")
    @classmethod
    def _normalise_allowed_cors_origins(
        cls, raw_origins: object
    ) -> tuple[str, ...] | object:  # pragma: no cover - pydantic handles typing
        """Convert environment input into a deduplicated tuple of origins."""

        if raw_origins is None:
            candidates: list[str] = []
        elif isinstance(raw_origins, str):
            candidates = raw_origins.split(",")
        else:
            try:
                candidates = list(raw_origins)
            except TypeError:
                return raw_origins

        normalised: list[str] = []
        seen: set[str] = set()
        for candidate in candidates:
            if not isinstance(candidate, str):
                continue
            trimmed = candidate.strip()
            if not trimmed or trimmed in seen:
                continue
            seen.add(trimmed)
            normalised.append(trimmed)

        return tuple(normalised)

    @property
    def tzinfo(self) -> ZoneInfo:
        """Resolved reference timezone / 基準タイムゾーン"""
        return ZoneInfo(self.review_timezone)


settings = Settings()
