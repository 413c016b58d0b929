"""FastAPI dependencies resolving the collaborators wired by ``create_app``.

ストアやセッション等はモジュールグローバルではなく ``app.state`` に保持し、
ルータからはここを経由して取得する。
"""

from __future__ import annotations

from fastapi import Request

from .config import Settings
from .metrics import MetricsRegistry
from .mnemonic import MnemonicProvider
from .session import SessionRegistry
from .store import ContactStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ContactStore:
    return request.app.state.store


def get_mnemonic_provider(request: Request) -> MnemonicProvider:
    return request.app.state.mnemonic_provider


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics
