from __future__ import annotations

import logging
from enum import IntEnum
from functools import lru_cache
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

import numpy as np

from trackml_parset.exceptions import DimensionError, SelectionError
from trackml_parset.kernels import correct_batch, correct_value, residual_batch
from trackml_parset.policy import ParameterPolicy


__all__ = ["ParameterSet", "FullParameterSet"]

logger = logging.getLogger(__name__)


class ParameterSet:
    r"""
    Fixed-size container for an ordered selection of track parameters.

    The selection (policy plus ordered, distinct identifiers) is part of the
    **type**: ``ParameterSet[policy, id_1, ..., id_n]`` returns a cached subclass
    bound to that combination, and instances of it hold

    - ``values`` :math:`\in\mathbb{R}^n`, stored in selection order and always
      range-corrected according to the policy traits, and
    - an optional covariance :math:`C\in\mathbb{R}^{n\times n}` owned exclusively
      by the instance (copied in, deep-copied on copy, never shared).

    Every mutator re-applies range correction and validates its input before
    touching any state, so a failing call leaves the instance unchanged.

    Residuals between two instances of the same class follow the per-class rule

    .. math::

        r_i =
        \begin{cases}
          a_i - b_i, & \text{unbound or bounded},\\
          \operatorname{fold}_{(-P/2,\,P/2]}(a_i - b_i), & \text{cyclic},
        \end{cases}

    and the projector :math:`H\in\{0,1\}^{n\times N}` maps a full-space vector
    onto the selection: :math:`H_{k,j} = 1` iff the :math:`k`-th selected
    identifier sits at canonical position :math:`j`.

    Examples
    --------
    >>> from trackml_parset.policy import DEFAULT_POLICY, ParDefs
    >>> LocPhi = ParameterSet[DEFAULT_POLICY, ParDefs.loc1, ParDefs.phi]
    >>> p = LocPhi(0.5, 4.0)
    >>> round(p.get_parameter(ParDefs.phi), 6)
    -2.283185
    >>> LocPhi.projector().shape
    (2, 5)

    Notes
    -----
    Instances are not internally synchronized; concurrent mutation of one
    instance must be serialized by the caller.
    """
    __slots__ = ("_values", "_covariance")

    _policy: ClassVar[Optional[ParameterPolicy]] = None
    _ids: ClassVar[Tuple[IntEnum, ...]] = ()
    _positions: ClassVar[Mapping[IntEnum, int]] = {}
    _columns: ClassVar[np.ndarray]
    _kinds: ClassVar[np.ndarray]
    _mins: ClassVar[np.ndarray]
    _maxs: ClassVar[np.ndarray]
    _projector: ClassVar[np.ndarray]

    def __class_getitem__(cls, item: Any) -> Type["ParameterSet"]:
        if not isinstance(item, tuple):
            item = (item,)
        policy, *identifiers = item
        return cls.specialize(policy, *identifiers)

    @classmethod
    def specialize(cls, policy: ParameterPolicy, *identifiers: Any) -> Type["ParameterSet"]:
        r"""
        Return the subclass bound to ``policy`` and the ordered ``identifiers``.

        Identifiers may be enum members of ``policy`` or their names; the same
        resolved selection always yields the same class object.
        Specialized classes are cached for the life of the process, together
        with the policy they reference.

        Raises
        ------
        SelectionError
            On unknown, duplicate or missing identifiers.
        TypeError
            If ``policy`` is not a :class:`ParameterPolicy` or the class is
            already specialized.
        """
        if cls._policy is not None:
            raise TypeError(f"{cls.__name__} is already bound to a parameter selection")
        if not isinstance(policy, ParameterPolicy):
            raise TypeError(f"Expected a ParameterPolicy, got {type(policy).__name__}")
        resolved = tuple(policy.resolve(i) for i in identifiers)
        return _specialize(cls, policy, resolved)

    def __init__(self, *values: Any, covariance: Optional[Any] = None):
        cls = type(self)
        if cls._policy is None:
            raise TypeError("ParameterSet must be specialized first, e.g. ParameterSet[policy, ids...]")
        if values:
            raw = cls._as_vector(values[0] if len(values) == 1 and np.ndim(values[0]) == 1 else values)
        else:
            raw = np.zeros(cls.size(), dtype=np.float64)
        cov = cls._as_covariance(covariance)
        self._values = correct_batch(raw, cls._kinds, cls._mins, cls._maxs)
        self._covariance = cov

    # --- static (type-level) information ---

    @classmethod
    def size(cls) -> int:
        """Number of selected parameters."""
        return len(cls._ids)

    @classmethod
    def contains(cls, identifier: Any) -> bool:
        """Whether ``identifier`` is part of the selection."""
        if cls._policy is None or identifier not in cls._policy:
            return False
        return cls._policy.resolve(identifier) in cls._positions

    @classmethod
    def identifiers(cls) -> Tuple[IntEnum, ...]:
        return cls._ids

    @classmethod
    def policy(cls) -> Optional[ParameterPolicy]:
        return cls._policy

    @classmethod
    def projector(cls) -> np.ndarray:
        r"""
        Read-only selection matrix :math:`H` of shape ``(size, full_size)``.

        Row :math:`k` is one-hot at the canonical column of the :math:`k`-th
        selected identifier, so ``projector() @ v`` extracts the selected
        components of a full-space vector ``v`` in selection order.
        """
        return cls._projector

    @classmethod
    def project(cls, full_vector: Any) -> np.ndarray:
        """Raw (uncorrected) selected components of a full-space vector."""
        n_full = cls._projector.shape[1]
        try:
            full = np.asarray(full_vector, dtype=np.float64)
        except ValueError as e:
            raise DimensionError(f"Expected a full parameter vector of shape ({n_full},): {e}") from e
        if full.shape != (n_full,):
            raise DimensionError(f"Expected a full parameter vector of shape ({n_full},), got {full.shape}")
        return cls._projector @ full

    @classmethod
    def from_full(cls, full_vector: Any, full_covariance: Optional[Any] = None) -> "ParameterSet":
        r"""
        Build an instance from full-space estimates.

        Values are :math:`H v` (range-corrected on construction); a full-space
        covariance :math:`C` is carried over as :math:`H C H^\top`.
        """
        values = cls.project(full_vector)
        cov = None
        if full_covariance is not None:
            C = np.asarray(full_covariance, dtype=np.float64)
            n_full = cls._projector.shape[1]
            if C.shape != (n_full, n_full):
                raise DimensionError(f"Expected a full covariance of shape ({n_full}, {n_full}), got {C.shape}")
            H = cls._projector
            cov = H @ C @ H.T
        return cls(values, covariance=cov)

    @classmethod
    def from_mapping(cls, values: Mapping[Any, float], covariance: Optional[Any] = None) -> "ParameterSet":
        """Build an instance from ``{identifier: value}`` covering the whole selection."""
        ordered: Dict[IntEnum, float] = {}
        for key, value in values.items():
            ordered[cls._ids[cls._position_of(key)]] = value
        missing = [i.name for i in cls._ids if i not in ordered]
        if missing:
            raise SelectionError(f"Missing values for {missing}")
        return cls([ordered[i] for i in cls._ids], covariance=covariance)

    # --- validation helpers ---

    @classmethod
    def _position_of(cls, identifier: Any) -> int:
        if cls._policy is not None and identifier in cls._policy:
            pos = cls._positions.get(cls._policy.resolve(identifier))
            if pos is not None:
                return pos
        raise SelectionError(f"{identifier!r} is not part of {cls.__name__}")

    @classmethod
    def _as_vector(cls, values: Any) -> np.ndarray:
        try:
            v = np.array(values, dtype=np.float64)
        except ValueError as e:
            raise DimensionError(f"{cls.__name__} expects {cls.size()} numeric values: {e}") from e
        if v.shape != (cls.size(),):
            raise DimensionError(f"{cls.__name__} expects {cls.size()} values, got shape {v.shape}")
        return v

    @classmethod
    def _as_covariance(cls, covariance: Optional[Any]) -> Optional[np.ndarray]:
        if covariance is None:
            return None
        n = cls.size()
        try:
            C = np.array(covariance, dtype=np.float64)
        except ValueError as e:
            raise DimensionError(f"{cls.__name__} expects a ({n}, {n}) covariance: {e}") from e
        if C.shape != (n, n):
            raise DimensionError(f"{cls.__name__} expects a ({n}, {n}) covariance, got shape {C.shape}")
        return C

    # --- accessors ---

    def get_parameter(self, identifier: Any) -> float:
        """Stored (corrected) value of ``identifier``."""
        return float(self._values[self._position_of(identifier)])

    def set_parameter(self, identifier: Any, value: float) -> None:
        """Range-correct ``value`` and store it; other values are untouched."""
        k = self._position_of(identifier)
        self._values[k] = correct_value(int(self._kinds[k]), float(self._mins[k]),
                                        float(self._maxs[k]), float(value))

    def get_parameters(self) -> np.ndarray:
        """Copy of the stored values in selection order."""
        return self._values.copy()

    def set_parameters(self, values: Any) -> None:
        """Range-correct and store a full vector of ``size()`` values."""
        cls = type(self)
        self._values = correct_batch(cls._as_vector(values), cls._kinds, cls._mins, cls._maxs)

    def get_covariance(self) -> Optional[np.ndarray]:
        """The owned covariance, or ``None`` if absent."""
        return self._covariance

    def set_covariance(self, covariance: Optional[Any]) -> None:
        """Replace the owned covariance with a private copy of ``covariance`` (or drop it)."""
        self._covariance = type(self)._as_covariance(covariance)

    def release_covariance(self) -> Optional[np.ndarray]:
        """Hand the owned covariance to the caller and keep none."""
        cov, self._covariance = self._covariance, None
        return cov

    # --- algebra ---

    def residual(self, other: "ParameterSet") -> np.ndarray:
        r"""
        Residual ``self - other`` respecting clamping and periodic wraparound.

        Parameters
        ----------
        other : ParameterSet
            Instance of the **same** specialized class.

        Returns
        -------
        r : ndarray, shape (size,)
            Residual in selection order. Cyclic components lie in
            :math:`(-P/2, P/2]`; bounded components are differences of the
            clamped stored values.

        Raises
        ------
        SelectionError
            If ``other`` holds a different selection.
        """
        cls = type(self)
        if type(other) is not cls:
            raise SelectionError(f"Cannot compute residual of {cls.__name__} with respect to "
                                 f"{type(other).__name__}")
        return residual_batch(self._values, other._values, cls._kinds, cls._mins, cls._maxs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterSet):
            return NotImplemented
        if type(other) is not type(self):
            return False
        if not np.array_equal(self._values, other._values):
            return False
        if self._covariance is None or other._covariance is None:
            return self._covariance is None and other._covariance is None
        return np.array_equal(self._covariance, other._covariance)

    __hash__ = None  # type: ignore[assignment]

    # --- lifecycle ---

    def copy(self) -> "ParameterSet":
        """Deep copy (values and covariance)."""
        new = object.__new__(type(self))
        new._values = self._values.copy()
        new._covariance = None if self._covariance is None else self._covariance.copy()
        return new

    def __copy__(self) -> "ParameterSet":
        return self.copy()

    def __deepcopy__(self, memo: Dict[int, Any]) -> "ParameterSet":
        return self.copy()

    def swap(self, other: "ParameterSet") -> None:
        """Exchange storage (values and covariance ownership) with ``other``."""
        if type(other) is not type(self):
            raise SelectionError(f"Cannot swap {type(self).__name__} with {type(other).__name__}")
        self._values, other._values = other._values, self._values
        self._covariance, other._covariance = other._covariance, self._covariance

    def assign(self, other: "ParameterSet") -> "ParameterSet":
        """Become a deep copy of ``other`` (copy-then-swap; self-assignment is a no-op)."""
        if type(other) is not type(self):
            raise SelectionError(f"Cannot assign {type(other).__name__} to {type(self).__name__}")
        tmp = other.copy()
        self.swap(tmp)
        return self

    def move(self) -> "ParameterSet":
        r"""
        Transfer storage to a new instance.

        The source keeps the corrected image of the zero vector and no covariance.
        """
        cls = type(self)
        new = object.__new__(cls)
        new._values, new._covariance = self._values, self._covariance
        self._values = correct_batch(np.zeros(cls.size(), dtype=np.float64), cls._kinds, cls._mins, cls._maxs)
        self._covariance = None
        return new

    def __len__(self) -> int:
        return type(self).size()

    def __repr__(self) -> str:
        vals = ", ".join(f"{i.name}={v:.6g}" for i, v in zip(self._ids, self._values))
        cov = "yes" if self._covariance is not None else "no"
        return f"{type(self).__name__}({vals}; covariance={cov})"


@lru_cache(maxsize=None)
def _specialize(base: Type[ParameterSet],
                policy: ParameterPolicy,
                identifiers: Tuple[IntEnum, ...]) -> Type[ParameterSet]:
    # Unbounded: one class object per selection, so every specialized policy
    # stays referenced for the life of the process.
    if not identifiers:
        raise SelectionError("A parameter selection needs at least one identifier")
    if len(set(identifiers)) != len(identifiers):
        dups = sorted({i.name for i in identifiers if identifiers.count(i) > 1})
        raise SelectionError(f"Duplicate identifiers in selection: {dups}")

    n = len(identifiers)
    columns = np.array([policy.index(i) for i in identifiers], dtype=np.int64)
    projector = np.zeros((n, policy.full_size), dtype=np.float64)
    projector[np.arange(n), columns] = 1.0

    def frozen(a: np.ndarray) -> np.ndarray:
        a = np.ascontiguousarray(a)
        a.flags.writeable = False
        return a

    name = f"{base.__name__}[{policy.name}: {', '.join(i.name for i in identifiers)}]"
    namespace = {
        "__slots__": (),
        "__module__": base.__module__,
        "_policy": policy,
        "_ids": identifiers,
        "_positions": {i: k for k, i in enumerate(identifiers)},
        "_columns": frozen(columns),
        "_kinds": frozen(policy.kinds[columns]),
        "_mins": frozen(policy.mins[columns]),
        "_maxs": frozen(policy.maxs[columns]),
        "_projector": frozen(projector),
    }
    logger.debug("Specialized %s", name)
    return type(name, (base,), namespace)


def FullParameterSet(policy: ParameterPolicy) -> Type[ParameterSet]:
    """Selection of every identifier of ``policy`` in canonical order."""
    return ParameterSet.specialize(policy, *policy.identifiers)
