from __future__ import annotations

from typing import Any, Optional

import numpy as np

from trackml_parset.exceptions import DimensionError
from trackml_parset.kernels import chi2 as _chi2
from trackml_parset.parameter_set import ParameterSet


__all__ = ["Measurement"]


class Measurement:
    r"""
    Measured track parameters on a surface, with their covariance and source.

    A measurement embeds a :class:`~trackml_parset.parameter_set.ParameterSet`
    (e.g. ``loc0, loc1, time`` of a cluster) carrying the measurement covariance
    :math:`V`, plus an opaque ``source`` handle (hit id, cluster record, ...).
    Given a full-space prediction :math:`(\hat{x}, C)` from a fitter, the
    residual and its compatibility are

    .. math::

        r = m \ominus H\hat{x}, \qquad
        S = V + H C H^\top, \qquad
        \chi^2 = r^\top S^{-1} r,

    where :math:`H` is the selection projector and :math:`\ominus` is the
    range-aware residual of the parameter set.

    Parameters
    ----------
    parameters : ParameterSet
        Measured values; must carry a covariance. A private copy is stored.
    source : object, optional
        Opaque link back to the detector-level record.

    Raises
    ------
    TypeError
        If ``parameters`` is not a specialized parameter set.
    DimensionError
        If ``parameters`` has no covariance.
    """
    __slots__ = ("_parameters", "_source")

    def __init__(self, parameters: ParameterSet, source: Any = None):
        if not isinstance(parameters, ParameterSet):
            raise TypeError(f"Expected a ParameterSet, got {type(parameters).__name__}")
        if parameters.get_covariance() is None:
            raise DimensionError("A measurement requires a covariance matrix")
        self._parameters = parameters.copy()
        self._source = source

    @property
    def parameters(self) -> ParameterSet:
        return self._parameters

    @property
    def covariance(self) -> np.ndarray:
        return self._parameters.get_covariance()

    @property
    def source(self) -> Any:
        return self._source

    def size(self) -> int:
        return self._parameters.size()

    def projector(self) -> np.ndarray:
        return self._parameters.projector()

    def residual(self, full_vector: Any) -> np.ndarray:
        """Residual of the measurement with respect to a full-space prediction."""
        predicted = type(self._parameters).from_full(full_vector)
        return self._parameters.residual(predicted)

    def chi2(self, full_vector: Any, full_covariance: Optional[Any] = None) -> float:
        r"""
        Mahalanobis compatibility of the measurement with a prediction.

        Without ``full_covariance`` only the measurement covariance enters
        :math:`S`.
        """
        r = self.residual(full_vector)
        S = np.array(self.covariance, dtype=np.float64)
        if full_covariance is not None:
            S = S + type(self._parameters).from_full(full_vector, full_covariance).get_covariance()
        return _chi2(r, S)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Measurement):
            return NotImplemented
        return self._parameters == other._parameters and self._source == other._source

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Measurement({self._parameters!r}, source={self._source!r})"
