"""Mapping between phoneme symbols and their integer indices."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Union

PathLike = Union[str, Path]

# Symbols that are read as another phoneme wherever a sequence is parsed.
_ALIASES = {"del": "t"}

log = logging.getLogger(__name__)


class PhonemeMapError(ValueError):
    """Raised for a phoneme symbol or index the map does not know."""


class PhonemeMap:
    """Phoneme inventory, indexed in the order the symbols were listed."""

    def __init__(self, symbols: Iterable[str]) -> None:
        self.symbols: tuple[str, ...] = tuple(symbols)
        # A symbol listed twice keeps the index of its last occurrence.
        self._indices = {symbol: i for i, symbol in enumerate(self.symbols)}

    @classmethod
    def load(
        cls, path: PathLike, silence_symbol: str = "sil", strict: bool = False
    ) -> "PhonemeMap":
        """Read whitespace-separated symbols from ``path``.

        A missing silence symbol raises ``PhonemeMapError`` when ``strict``
        is true and is only logged otherwise.
        """
        symbols = Path(path).read_text().split()
        if silence_symbol not in symbols:
            message = (
                f'didn\'t find the silence symbol "{silence_symbol}" '
                f"inside phonemes file: {path}"
            )
            if strict:
                raise PhonemeMapError(message)
            log.error(message)
        return cls(symbols)

    def index(self, symbol: str) -> int:
        try:
            return self._indices[symbol]
        except KeyError:
            raise PhonemeMapError(f"/{symbol}/ is not a legal phoneme") from None

    def symbol(self, index: int) -> str:
        if not 0 <= index < len(self.symbols):
            raise PhonemeMapError(f"no phoneme with index {index}")
        return self.symbols[index]

    def encode(self, text: str) -> list[int]:
        """Turn a whitespace-separated phoneme string into indices."""
        return [self.index(_ALIASES.get(token, token)) for token in text.split()]

    def decode(self, indices: Iterable[int]) -> list[str]:
        return [self.symbol(i) for i in indices]

    def __len__(self) -> int:
        return len(self.symbols)