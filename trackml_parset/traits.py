from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum

from trackml_parset import kernels
from trackml_parset.exceptions import PolicyError


__all__ = ["BoundClass", "ParameterTrait", "correct"]


class BoundClass(IntEnum):
    """Range restriction of a single track parameter."""

    UNBOUND = kernels.UNBOUND
    BOUNDED = kernels.BOUNDED
    CYCLIC = kernels.CYCLIC


def correct(bound_class: BoundClass, lo: float, hi: float, raw: float) -> float:
    r"""
    Range-correct ``raw`` for a parameter of class ``bound_class``.

    Unbound values are returned unchanged, bounded values are clamped to
    :math:`[lo, hi]` and cyclic values are folded into :math:`[lo, hi)` by the
    period :math:`P = hi - lo`. The function is total: it never raises, and the
    folded value differs from ``raw`` by an integer multiple of :math:`P`.

    Examples
    --------
    >>> correct(BoundClass.BOUNDED, 0.0, 1.0, 1.5)
    1.0
    >>> correct(BoundClass.CYCLIC, -1.0, 1.0, 1.5)
    -0.5
    """
    return float(kernels.correct_value(int(bound_class), float(lo), float(hi), float(raw)))


@dataclass(frozen=True)
class ParameterTrait:
    r"""
    Immutable range metadata for one parameter identifier of a policy.

    Attributes
    ----------
    bound_class : BoundClass
        Unbound, bounded (clamped to :math:`[\min,\max]`) or cyclic
        (folded into :math:`[\min,\max)`).
    min, max : float
        Limits. Unbound parameters carry :math:`(-\infty, +\infty)`; bounded and
        cyclic parameters need finite limits with ``min < max``.

    Raises
    ------
    PolicyError
        If the limits are inconsistent with the bound class.
    """
    bound_class: BoundClass = BoundClass.UNBOUND
    min: float = -math.inf
    max: float = math.inf

    def __post_init__(self):
        try:
            bound_class = BoundClass(self.bound_class)
        except ValueError as e:
            raise PolicyError(f"Unknown bound class: {self.bound_class!r}") from e
        lo, hi = float(self.min), float(self.max)
        object.__setattr__(self, "bound_class", bound_class)
        object.__setattr__(self, "min", lo)
        object.__setattr__(self, "max", hi)

        if bound_class is BoundClass.UNBOUND:
            if lo != -math.inf or hi != math.inf:
                raise PolicyError(f"Unbound parameters carry no limits, got [{lo}, {hi}]")
            return
        if not (math.isfinite(lo) and math.isfinite(hi)):
            raise PolicyError(f"{bound_class.name.lower()} parameters need finite limits, got [{lo}, {hi}]")
        if not lo < hi:
            raise PolicyError(f"Parameter limits must satisfy min < max, got [{lo}, {hi}]")

    @classmethod
    def unbound(cls) -> "ParameterTrait":
        return cls(BoundClass.UNBOUND)

    @classmethod
    def bounded(cls, lo: float, hi: float) -> "ParameterTrait":
        return cls(BoundClass.BOUNDED, lo, hi)

    @classmethod
    def cyclic(cls, lo: float, hi: float) -> "ParameterTrait":
        return cls(BoundClass.CYCLIC, lo, hi)

    @property
    def period(self) -> float:
        """Width of the allowed range (infinite for unbound parameters)."""
        return self.max - self.min

    def correct(self, raw: float) -> float:
        """Range-correct ``raw`` according to this trait."""
        return correct(self.bound_class, self.min, self.max, raw)

    def contains(self, value: float) -> bool:
        """Whether ``value`` already satisfies the correction invariant."""
        if self.bound_class is BoundClass.BOUNDED:
            return self.min <= value <= self.max
        if self.bound_class is BoundClass.CYCLIC:
            return self.min <= value < self.max
        return True
