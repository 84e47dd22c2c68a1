from __future__ import annotations

import logging
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Sequence, Tuple, Type, Union

import numpy as np

from trackml_parset.exceptions import PolicyError, SelectionError
from trackml_parset.traits import ParameterTrait


__all__ = [
    "ParameterPolicy",
    "ParDefs",
    "DEFAULT_POLICY",
    "BoundIndices",
    "BOUND_POLICY",
]

logger = logging.getLogger(__name__)

Identifier = Union[IntEnum, str]


class ParameterPolicy:
    r"""
    Full identifier enumeration plus per-identifier traits of a parameterization.

    A policy is an immutable, process-wide constant. Its identifier enumeration
    fixes the **canonical order** of the full parameter space: the column of an
    identifier in any projector is its position in that enumeration. Trait
    lookups are precomputed into read-only arrays aligned with the canonical
    order so kernels can consume them directly.

    Parameters
    ----------
    name : str
        Human-readable policy name (used in class names and logs).
    identifiers : type[IntEnum]
        Enumeration of parameter identifiers in canonical order.
    traits : mapping
        ``identifier -> ParameterTrait`` for **every** identifier. Keys may be
        enum members or their names.

    Attributes
    ----------
    name : str
    identifiers : type[IntEnum]
    kinds : ndarray of int64, shape (N,)
        Bound class codes in canonical order (read-only).
    mins, maxs : ndarray of float64, shape (N,)
        Limits in canonical order (read-only; :math:`\mp\infty` for unbound).

    Raises
    ------
    PolicyError
        If the enumeration is empty, or traits are missing or superfluous.
    """
    __slots__ = ("name", "identifiers", "_traits", "_index", "kinds", "mins", "maxs")

    def __init__(self,
                 name: str,
                 identifiers: Type[IntEnum],
                 traits: Mapping[Identifier, ParameterTrait]):
        members = tuple(identifiers)
        if not members:
            raise PolicyError(f"Policy {name!r} defines no identifiers")

        self.name = str(name)
        self.identifiers = identifiers
        self._index: Dict[IntEnum, int] = {m: i for i, m in enumerate(members)}

        resolved: Dict[IntEnum, ParameterTrait] = {}
        for key, trait in traits.items():
            try:
                member = self.resolve(key)
            except SelectionError as e:
                raise PolicyError(f"Policy {name!r}: trait given for unknown identifier {key!r}") from e
            if not isinstance(trait, ParameterTrait):
                raise PolicyError(f"Policy {name!r}: trait for {member.name} must be a ParameterTrait")
            resolved[member] = trait
        missing = [m.name for m in members if m not in resolved]
        if missing:
            raise PolicyError(f"Policy {name!r}: missing traits for {missing}")
        self._traits = MappingProxyType({m: resolved[m] for m in members})

        self.kinds = self._frozen(np.array([int(t.bound_class) for t in self._traits.values()], dtype=np.int64))
        self.mins = self._frozen(np.array([t.min for t in self._traits.values()], dtype=np.float64))
        self.maxs = self._frozen(np.array([t.max for t in self._traits.values()], dtype=np.float64))
        logger.debug("Built parameter policy %s with %d identifiers", self.name, len(members))

    @staticmethod
    def _frozen(a: np.ndarray) -> np.ndarray:
        a.flags.writeable = False
        return a

    @classmethod
    def from_traits(cls, name: str, traits: Sequence[Tuple[str, ParameterTrait]]) -> "ParameterPolicy":
        r"""
        Build a policy (and its identifier enumeration) from ``(name, trait)`` pairs.

        The order of ``traits`` becomes the canonical order.

        Raises
        ------
        PolicyError
            On duplicate or invalid identifier names.
        """
        names = [n for n, _ in traits]
        if len(names) != len(set(names)):
            dups = sorted({n for n in names if names.count(n) > 1})
            raise PolicyError(f"Policy {name!r}: duplicate identifiers {dups}")
        try:
            enum = IntEnum(f"{name}Ids", [(n, i) for i, n in enumerate(names)])
        except (TypeError, ValueError) as e:
            raise PolicyError(f"Policy {name!r}: invalid identifier names {names}: {e}") from e
        return cls(name, enum, {n: t for n, t in traits})

    def resolve(self, identifier: Any) -> IntEnum:
        """Map an enum member of this policy, or its name, to the enum member."""
        if isinstance(identifier, self.identifiers):
            return identifier
        if isinstance(identifier, str):
            try:
                return self.identifiers[identifier]
            except KeyError:
                pass
        raise SelectionError(f"{identifier!r} is not an identifier of policy {self.name}")

    def index(self, identifier: Identifier) -> int:
        """Canonical position of ``identifier`` in the full parameter space."""
        return self._index[self.resolve(identifier)]

    def trait(self, identifier: Identifier) -> ParameterTrait:
        return self._traits[self.resolve(identifier)]

    @property
    def traits(self) -> Mapping[IntEnum, ParameterTrait]:
        return self._traits

    @property
    def full_size(self) -> int:
        return len(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __iter__(self) -> Iterator[IntEnum]:
        return iter(self._traits)

    def __contains__(self, identifier: Any) -> bool:
        try:
            self.resolve(identifier)
        except SelectionError:
            return False
        return True

    def __repr__(self) -> str:
        return f"ParameterPolicy({self.name!r}, [{', '.join(m.name for m in self)}])"


class ParDefs(IntEnum):
    """Perigee-style track parameters: two local offsets, two angles, q/p."""

    loc1 = 0
    loc2 = 1
    phi = 2
    theta = 3
    qop = 4


DEFAULT_POLICY = ParameterPolicy(
    "ParDefs",
    ParDefs,
    {
        ParDefs.loc1: ParameterTrait.unbound(),
        ParDefs.loc2: ParameterTrait.unbound(),
        ParDefs.phi: ParameterTrait.cyclic(-np.pi, np.pi),
        ParDefs.theta: ParameterTrait.bounded(0.0, np.pi),
        ParDefs.qop: ParameterTrait.unbound(),
    },
)


class BoundIndices(IntEnum):
    """Track parameters bound to a surface, including time."""

    loc0 = 0
    loc1 = 1
    phi = 2
    theta = 3
    qop = 4
    time = 5


BOUND_POLICY = ParameterPolicy(
    "BoundIndices",
    BoundIndices,
    {
        BoundIndices.loc0: ParameterTrait.unbound(),
        BoundIndices.loc1: ParameterTrait.unbound(),
        BoundIndices.phi: ParameterTrait.cyclic(-np.pi, np.pi),
        BoundIndices.theta: ParameterTrait.bounded(0.0, np.pi),
        BoundIndices.qop: ParameterTrait.unbound(),
        BoundIndices.time: ParameterTrait.unbound(),
    },
)
