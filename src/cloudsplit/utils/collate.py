from __future__ import annotations

from functools import lru_cache

from pyuca import Collator


@lru_cache(maxsize=1)
def _collator() -> Collator:
    # Loading the collation table takes a moment, so it happens once.
    return Collator()


def collation_key(text: str) -> tuple[int, ...]:
    """Unicode collation key: case and accents only break ties between equal letters."""
    return _collator().sort_key(text)
