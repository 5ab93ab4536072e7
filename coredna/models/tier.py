"""
coredna/models/tier.py

Subscription tiers, generation categories and the UNLIMITED sentinel.
"""

from enum import Enum
from typing import Union


class Tier(str, Enum):
    FREE = "free"
    PRO = "pro"
    HUNTER = "hunter"
    AGENCY = "agency"


class Category(str, Enum):
    LLM = "llm"
    IMAGE = "image"
    VOICE = "voice"
    VIDEO = "video"


# Usage kind for brand extractions; shares the ledger with generation categories.
EXTRACTION = "extraction"


class _Unlimited:
    """Singleton limit that compares greater than every integer."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNLIMITED"

    def __str__(self) -> str:
        return "unlimited"

    def __eq__(self, other) -> bool:
        return other is self

    def __hash__(self) -> int:
        return hash("unlimited")

    def __gt__(self, other) -> bool:
        return other is not self

    def __ge__(self, other) -> bool:
        return True

    def __lt__(self, other) -> bool:
        return False

    def __le__(self, other) -> bool:
        return other is self

    def __reduce__(self):
        return (_Unlimited, ())


UNLIMITED = _Unlimited()

Limit = Union[int, _Unlimited]


def is_unlimited(value) -> bool:
    return value is UNLIMITED


def serialize_limit(value: Limit):
    """Render a limit for JSON: ints unchanged, UNLIMITED as "unlimited"."""
    return "unlimited" if value is UNLIMITED else value


def coerce_tier(value) -> Tier:
    """Parse a tier name (case-insensitive). Raises ValueError on unknown tiers."""
    if isinstance(value, Tier):
        return value
    return Tier(str(value).strip().lower())


def coerce_category(value) -> Category:
    if isinstance(value, Category):
        return value
    return Category(str(value).strip().lower())
