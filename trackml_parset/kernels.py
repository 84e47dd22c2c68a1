from __future__ import annotations
import numpy as np
from numba import njit


__all__ = [
    "UNBOUND",
    "BOUNDED",
    "CYCLIC",
    "correct_value",
    "correct_batch",
    "residual_batch",
    "factor_covariance",
    "chi2",
]

# bound class codes shared with :class:`trackml_parset.traits.BoundClass`
UNBOUND = 0
BOUNDED = 1
CYCLIC = 2


@njit(cache=True)
def correct_value(kind: int, lo: float, hi: float, x: float) -> float:
    r"""
    Range-correct a single raw value according to its bound class.

    .. math::

        c(x) =
        \begin{cases}
          x, & \text{unbound},\\[2pt]
          \min(\max(x, x_\min), x_\max), & \text{bounded},\\[2pt]
          x - P\,\big\lfloor (x - x_\min)/P \big\rfloor, & \text{cyclic},
        \end{cases}
        \qquad P = x_\max - x_\min.

    Parameters
    ----------
    kind : int
        One of :data:`UNBOUND`, :data:`BOUNDED`, :data:`CYCLIC`.
    lo, hi : float
        Limits of the parameter (ignored for unbound parameters).
    x : float
        Raw value.

    Returns
    -------
    float
        Corrected value. Cyclic results satisfy :math:`x_\min \le c(x) < x_\max`
        and bounded results :math:`x_\min \le c(x) \le x_\max`. NaN propagates.

    Notes
    -----
    Floating point rounding of the periodic fold can land exactly on
    :math:`x_\max` for inputs a hair below :math:`x_\min`; such results are
    folded once more. For large magnitudes the product :math:`P\lfloor\cdot\rfloor`
    loses more than a period, so the remainder is taken directly instead.
    Either way the half-open interval is respected for every finite input.
    """
    if kind == BOUNDED:
        if x < lo:
            return lo
        if x > hi:
            return hi
        return x
    if kind == CYCLIC:
        period = hi - lo
        y = x - period * np.floor((x - lo) / period)
        if not (lo <= y < hi):
            y = lo + (x - lo) % period
        if y >= hi:
            y -= period
        if y < lo:
            y = lo
        return y
    return x


@njit(cache=True)
def correct_batch(values: np.ndarray, kinds: np.ndarray,
                  mins: np.ndarray, maxs: np.ndarray) -> np.ndarray:
    r"""
    Componentwise range correction of a parameter vector.

    Parameters
    ----------
    values : ndarray, shape (n,)
        Raw values.
    kinds, mins, maxs : ndarray, shape (n,)
        Bound class code and limits for each component, aligned with ``values``.

    Returns
    -------
    out : ndarray, shape (n,)
        Freshly allocated corrected vector; ``values`` is not modified.
    """
    n = values.shape[0]
    out = np.empty(n, dtype=np.float64)
    for i in range(n):
        out[i] = correct_value(kinds[i], mins[i], maxs[i], values[i])
    return out


@njit(cache=True)
def residual_batch(a: np.ndarray, b: np.ndarray, kinds: np.ndarray,
                   mins: np.ndarray, maxs: np.ndarray) -> np.ndarray:
    r"""
    Componentwise residual :math:`a - b` of two **already corrected** vectors.

    Unbound and bounded components use the plain difference (bounded values were
    clamped when stored, so no extra logic is required). Cyclic components are
    folded into the half-open interval :math:`(-P/2,\,P/2]`:

    .. math::

        d = a_i - b_i,\qquad
        d \leftarrow
        \begin{cases}
          d - P, & d > P/2,\\
          d + P, & d \le -P/2,\\
          d, & \text{otherwise.}
        \end{cases}

    Parameters
    ----------
    a, b : ndarray, shape (n,)
        Corrected parameter vectors with identical selection.
    kinds, mins, maxs : ndarray, shape (n,)
        Bound class code and limits for each component.

    Returns
    -------
    r : ndarray, shape (n,)
        Residual vector in the order of the inputs.
    """
    n = a.shape[0]
    out = np.empty(n, dtype=np.float64)
    for i in range(n):
        d = a[i] - b[i]
        if kinds[i] == CYCLIC:
            period = maxs[i] - mins[i]
            half = 0.5 * period
            if d > half:
                d -= period
            elif d <= -half:
                d += period
        out[i] = d
    return out


def factor_covariance(S: np.ndarray) -> np.ndarray:
    r"""
    Robust Cholesky factorization with small diagonal *jitter* and SPD fallback.

    Attempts ``np.linalg.cholesky(S)``; on failure, retries with
    :math:`S+\varepsilon I` where :math:`\varepsilon` is escalated
    geometrically. If all retries fail, an eigenvalue floor is applied:

    .. math::
        S_\text{fix} = V\;\mathrm{diag}(\max(w,\; w_\max\,10^{-15}))\;V^\top.

    Parameters
    ----------
    S : array_like, shape (n, n)
        Symmetric covariance (not necessarily strictly SPD).

    Returns
    -------
    L : ndarray, shape (n, n)
        Lower-triangular factor with :math:`L L^\top \approx S`.
    """
    S = np.asarray(S, dtype=np.float64, order="C")
    try:
        return np.linalg.cholesky(S)
    except np.linalg.LinAlgError:
        I = np.eye(S.shape[0], dtype=S.dtype)
        eps = 1e-12
        for _ in range(8):
            try:
                return np.linalg.cholesky(S + eps * I)
            except np.linalg.LinAlgError:
                eps *= 10.0
        w, V = np.linalg.eigh(S)
        w = np.clip(w, w.max() * 1e-15, None)
        S_fix = (V * w) @ V.T
        return np.linalg.cholesky(S_fix)


def chi2(residual: np.ndarray, S: np.ndarray) -> float:
    r"""
    Mahalanobis distance :math:`\chi^2 = r^\top S^{-1} r` via two triangular solves.

    Parameters
    ----------
    residual : array_like, shape (n,)
    S : array_like, shape (n, n)

    Returns
    -------
    float
    """
    r = np.asarray(residual, dtype=np.float64)
    if r.size == 0:
        return 0.0
    L = factor_covariance(S)
    y = np.linalg.solve(L, r)
    x = np.linalg.solve(L.T, y)
    return float(r @ x)
