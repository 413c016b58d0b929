"""Mnemonic hook generation.

The rest of the application treats a hook as an opaque string: it is stored on
the contact and shown after the answer, never parsed.

記憶フック生成。現状はテンプレートベースのみ（外部の文章生成サービスは呼ばない）。
"""

from __future__ import annotations

import random
from typing import Protocol

from .config import Settings, SUPPORTED_MNEMONIC_PROVIDERS
from .logging import logger


class MnemonicProvider(Protocol):
    """Protocol for mnemonic hook providers."""

    @property
    def name(self) -> str: ...

    def generate_hook(self, name: str, context: str = "") -> str:
        """Return a short memorable sentence about ``name``."""
        ...


_COLORS = ("crimson", "golden", "emerald", "sapphire", "violet", "silver", "neon", "rainbow")
_ITEMS = ("hat", "cape", "crown", "glasses", "scarf", "umbrella", "badge", "balloon")
_ACTIONS = (
    "dancing",
    "juggling colorful balls",
    "singing loudly",
    "conducting an orchestra",
    "painting a masterpiece",
    "playing a guitar",
    "doing magic tricks",
)
_PLACES = (
    "a sunny meadow",
    "a snowy mountain peak",
    "a bustling marketplace",
    "an ancient library",
    "a tropical beach",
    "a starlit observatory",
)
_OBJECTS = (
    "telescope",
    "book",
    "compass",
    "lantern",
    "paintbrush",
    "crystal ball",
    "musical note",
    "butterfly net",
)
_SOUND_ALIKES = {
    "john": "gone",
    "mary": "merry",
    "david": "gave it",
    "sarah": "sahara",
    "michael": "my call",
    "lisa": "pizza",
    "james": "games",
    "jennifer": "gentle fur",
}
_LETTER_WORDS = {
    "A": "Adventure", "B": "Brilliant", "C": "Creative", "D": "Dynamic", "E": "Energetic",
    "F": "Friendly", "G": "Generous", "H": "Happy", "I": "Innovative", "J": "Joyful",
    "K": "Kind", "L": "Lively", "M": "Magnetic", "N": "Noble", "O": "Optimistic",
    "P": "Passionate", "Q": "Quick", "R": "Radiant", "S": "Spirited", "T": "Thoughtful",
    "U": "Unique", "V": "Vibrant", "W": "Wonderful", "X": "eXtraordinary", "Y": "Youthful",
    "Z": "Zealous",
}


def sound_alike(name: str) -> str:
    """Very small sound-alike table keyed by the first given name."""
    first = name.strip().split()[0].lower() if name.strip() else ""
    return _SOUND_ALIKES.get(first, name.strip().lower())


def letter_word(name: str) -> str:
    letter = name.strip()[:1].upper()
    return _LETTER_WORDS.get(letter, "Amazing")


class TemplateMnemonicProvider:
    """Fill one of a few vivid-image templates with random details.

    乱数生成器を注入できるため、テストではシード固定で決定的に出力を得られる。
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    @property
    def name(self) -> str:
        return "template"

    def _templates(self, name: str) -> list[str]:
        pick = self._rng.choice
        return [
            f"Picture {name} wearing a vibrant {pick(_COLORS)} {pick(_ITEMS)} while {pick(_ACTIONS)}.",
            f"Imagine {name} standing in {pick(_PLACES)}, holding a giant {pick(_OBJECTS)}.",
            f'{name} sounds like "{sound_alike(name)}" - picture them {pick(_ACTIONS)} with a {pick(_OBJECTS)}.',
            (
                f"Remember {name} by thinking: {name[:1].upper()} for {letter_word(name)}, "
                f"surrounded by {pick(_COLORS)} {pick(_ITEMS)}s."
            ),
        ]

    def generate_hook(self, name: str, context: str = "") -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("name is required to generate a mnemonic hook")
        hook = self._rng.choice(self._templates(cleaned))
        notes = (context or "").strip()
        if notes:
            hook += f" You met them {notes}."
        return hook


def build_mnemonic_provider(cfg: Settings) -> MnemonicProvider:
    """Construct the provider named by ``cfg.mnemonic_provider``.

    strict モードでは未知のプロバイダ名を拒否し、非 strict ではテンプレートへフォールバックする。
    """
    rng = random.Random(cfg.mnemonic_seed) if cfg.mnemonic_seed is not None else None
    if cfg.mnemonic_provider not in SUPPORTED_MNEMONIC_PROVIDERS:
        if cfg.strict_mode:
            raise ValueError(f"MNEMONIC_PROVIDER must be one of {sorted(SUPPORTED_MNEMONIC_PROVIDERS)}")
        logger.warning("mnemonic_provider_fallback", requested=cfg.mnemonic_provider, using="template")
    return TemplateMnemonicProvider(rng=rng)
