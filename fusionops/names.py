from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Level = Literal["campaign", "adset", "ad"]

_UNKNOWN_LABELS: dict[str, str] = {
    "campaign": "Unknown Campaign",
    "adset": "Unknown Adset",
    "ad": "Unknown Ad",
}


@dataclass(frozen=True)
class ScopeName:
    """A provider-supplied name, or the Unknown variant when the provider sent none.

    Unknown names render as "Unknown Campaign" etc. but never join against
    commerce keys, so they cannot collide with a real campaign of that name.
    """

    level: Level
    value: str | None = None

    @classmethod
    def of(cls, level: Level, raw: object) -> "ScopeName":
        s = str(raw) if raw is not None else ""
        return cls(level=level, value=s or None)

    @property
    def is_known(self) -> bool:
        return self.value is not None

    @property
    def label(self) -> str:
        if self.value is None:
            return _UNKNOWN_LABELS[self.level]
        return self.value

    def __str__(self) -> str:
        return self.label
