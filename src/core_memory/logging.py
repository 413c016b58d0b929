"""Logging utilities and sanitisation helpers.

構造化ログの初期化と、機密情報を含むイベントを安全にマスクする
ヘルパーをまとめて提供する。
"""

from typing import Any

import logging
import structlog
from structlog import contextvars as structlog_contextvars

from .config import Settings, settings as default_settings


_SENSITIVE_KEYWORDS = ("api_key", "token", "secret", "authorization", "password", "dsn")
_MASK_PLACEHOLDER = "***"


def _mask_secret_value(raw: object) -> str:
    """Return a masked representation of a secret-like value.

    短い値は `***` に、一定長以上は先頭4文字+末尾4文字だけを残し中間を隠す。
    """

    if raw is None:
        return _MASK_PLACEHOLDER
    text = str(raw).strip()
    if not text or len(text) <= 8:
        return _MASK_PLACEHOLDER
    return f"{text[:4]}…{text[-4:]}"


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS)


def _mask_known_literals(value: str, known_secrets: tuple[str, ...]) -> str:
    masked = value
    for secret in known_secrets:
        if not secret:
            continue
        masked = masked.replace(secret, _mask_secret_value(secret))
    return masked


def build_sanitizer(known_secrets: tuple[str, ...]) -> structlog.types.Processor:
    """Build a processor that masks sensitive fields before rendering.

    キー名に `token`/`secret` 等が含まれる場合は値をマスクし、文字列内に
    既知のシークレットリテラルが紛れ込んでいれば置換する。ネストした dict
    も同様に再帰的に処理する。
    """

    def _sanitize_value(value: Any, key_hint: str | None = None) -> Any:
        if isinstance(value, dict):
            return {k: _sanitize_value(v, str(k)) for k, v in value.items()}
        if isinstance(value, str):
            cleaned = _mask_known_literals(value, known_secrets)
            if key_hint and _is_sensitive_key(key_hint):
                return _mask_secret_value(cleaned)
            return cleaned
        if key_hint and _is_sensitive_key(key_hint):
            return _mask_secret_value(value)
        return value

    def _sanitize_event_dict(
        _logger: structlog.types.WrappedLogger,
        _method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        for key, value in list(event_dict.items()):
            event_dict[key] = _sanitize_value(value, str(key))
        return event_dict

    return _sanitize_event_dict


def configure_logging(cfg: Settings | None = None) -> None:
    """Configure structlog for application-wide logging.

    アプリ全体のロギング設定を行う。標準 logging を INFO レベルで初期化し、
    structlog で ISO タイムスタンプと JSON 形式の出力を有効化する。
    """
    cfg = cfg or default_settings
    # stdlib 側の出力に余計なプレフィックス（"INFO:logger:" など）を付けない
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
        force=True,
    )
    known_secrets = tuple(secret for secret in (cfg.sentry_dsn,) if secret)
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog_contextvars.merge_contextvars,
            build_sanitizer(known_secrets),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    # Optional: Sentry integration (enabled if DSN is provided)
    if cfg.sentry_dsn:
        try:
            import sentry_sdk  # type: ignore
            from sentry_sdk.integrations.logging import LoggingIntegration  # type: ignore
        except ImportError:
            logger.warning("sentry_unavailable", reason="sentry_sdk not installed")
            return
        sentry_logging = LoggingIntegration(
            level=logging.INFO,
            event_level=logging.ERROR,
        )
        sentry_sdk.init(dsn=cfg.sentry_dsn, integrations=[sentry_logging], environment=cfg.environment)


logger = structlog.get_logger()
