"""
Three-valued logic used throughout constraint evaluation.

``Tristate.UNKNOWN`` means the answer is not known *yet* (a purchase receipt
that has not loaded, a permission prompt that has not been answered). The
operators follow Kleene's strong logic:

- ``a & b``: FALSE if either side is FALSE, else UNKNOWN if either side is
  UNKNOWN, else TRUE.
- ``a | b``: TRUE if either side is TRUE, else UNKNOWN if either side is
  UNKNOWN, else FALSE.
- ``~a``: swaps TRUE and FALSE, leaves UNKNOWN alone.

Because both folds are commutative, results never depend on the iteration
order of the operands, which matters when they come out of a set.
"""

from enum import Enum
from typing import Iterable, Optional


class Tristate(str, Enum):
    """A boolean with a third, not-yet-known value."""
    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"

    @classmethod
    def from_optional(cls, value: Optional[bool]) -> "Tristate":
        """Convert ``True``/``False``/``None`` into a tri-state."""
        if value is None:
            return cls.UNKNOWN
        return cls.TRUE if value else cls.FALSE

    def to_optional(self) -> Optional[bool]:
        """Convert back to ``True``/``False``/``None``."""
        if self is Tristate.UNKNOWN:
            return None
        return self is Tristate.TRUE

    @property
    def is_known(self) -> bool:
        return self is not Tristate.UNKNOWN

    def __and__(self, other: "Tristate") -> "Tristate":
        if not isinstance(other, Tristate):
            return NotImplemented
        if self is Tristate.FALSE or other is Tristate.FALSE:
            return Tristate.FALSE
        if self is Tristate.UNKNOWN or other is Tristate.UNKNOWN:
            return Tristate.UNKNOWN
        return Tristate.TRUE

    def __or__(self, other: "Tristate") -> "Tristate":
        if not isinstance(other, Tristate):
            return NotImplemented
        if self is Tristate.TRUE or other is Tristate.TRUE:
            return Tristate.TRUE
        if self is Tristate.UNKNOWN or other is Tristate.UNKNOWN:
            return Tristate.UNKNOWN
        return Tristate.FALSE

    def __invert__(self) -> "Tristate":
        if self is Tristate.TRUE:
            return Tristate.FALSE
        if self is Tristate.FALSE:
            return Tristate.TRUE
        return Tristate.UNKNOWN

    @classmethod
    def all_of(cls, values: Iterable["Tristate"]) -> "Tristate":
        """Conjunction of ``values``. Stops at the first FALSE. Empty is TRUE."""
        result = cls.TRUE
        for value in values:
            if value is cls.FALSE:
                return cls.FALSE
            result = result & value
        return result

    @classmethod
    def any_of(cls, values: Iterable["Tristate"]) -> "Tristate":
        """Disjunction of ``values``. Stops at the first TRUE. Empty is FALSE."""
        result = cls.FALSE
        for value in values:
            if value is cls.TRUE:
                return cls.TRUE
            result = result | value
        return result
