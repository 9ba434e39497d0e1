"""
BookPress — Book configuration enums shared by compilation, cover and print.
"""

from __future__ import annotations

import enum

from bookpress.errors import InvalidBookSizeError


class BookSize(str, enum.Enum):
    SMALL_SQUARE = "small-square"
    LARGE_SQUARE = "large-square"
    PORTRAIT = "portrait"

    @property
    def code(self) -> str:
        """Trim code used by print partners (e.g. '8x8')."""
        return _TRIM_CODES[self]

    @classmethod
    def parse(cls, value: str | BookSize) -> BookSize:
        """Accept either the enum value or the trim code."""
        if isinstance(value, BookSize):
            return value
        for size in cls:
            if value in (size.value, size.code):
                return size
        raise InvalidBookSizeError(str(value), [s.value for s in cls])


_TRIM_CODES = {
    BookSize.SMALL_SQUARE: "8x8",
    BookSize.LARGE_SQUARE: "10x10",
    BookSize.PORTRAIT: "8.5x11",
}


class PaperType(str, enum.Enum):
    STANDARD = "standard"
    PREMIUM = "premium"


class CoverType(str, enum.Enum):
    SOFT = "soft"
    HARD = "hard"


class CoverMode(str, enum.Enum):
    SOLID = "solid"
    FRONT_IMAGE = "front-image"
    WRAPAROUND = "wraparound"
