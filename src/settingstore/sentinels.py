"""Cache markers shared by the memo and shared tiers."""

from __future__ import annotations


class _Marker:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False


# Cached "confirmed no record for this key"
ABSENT = _Marker("ABSENT")

# Nothing cached at all (never queried, or forgotten)
MISSING = _Marker("MISSING")
