"""Major.Minor.Patch versions used for compatibility checks."""

from functools import total_ordering
from typing import Iterable

# Version tag embedded in every versioned serialized session.
SERIALIZED_VERSION = "6.0.0"

# Oldest server major version this SDK talks to.
MINIMUM_SERVER_MAJOR = 6


@total_ordering
class Version:
    """A three component version, compared lexicographically."""

    __slots__ = ("_digits",)

    def __init__(self, digits: Iterable[int]):
        digits = tuple(int(d) for d in digits)
        if len(digits) != 3:
            raise ValueError("Expected three digits for version")
        if any(d < 0 for d in digits):
            raise ValueError("Version digits must be non-negative")
        self._digits = digits

    @classmethod
    def from_string(cls, version: str) -> "Version":
        """Parse a dotted version string such as "6.1.0"."""
        try:
            return cls(int(part, 10) for part in version.strip().split("."))
        except (AttributeError, TypeError) as e:
            raise ValueError(f"invalid version {version!r}") from e

    @property
    def digits(self) -> tuple:
        return self._digits

    @property
    def major(self) -> int:
        return self._digits[0]

    def compare(self, rhs: "Version") -> int:
        """Return -1, 0 or 1 as this version is older than, equal to or newer than `rhs`."""
        if self._digits < rhs._digits:
            return -1
        if self._digits > rhs._digits:
            return 1
        return 0

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._digits == other._digits

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self._digits < other._digits

    def __hash__(self):
        return hash(self._digits)

    def __str__(self):
        return ".".join(str(d) for d in self._digits)

    def __repr__(self):
        return f"Version({str(self)!r})"
