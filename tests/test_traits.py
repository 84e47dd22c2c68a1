import math
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np
import pytest

from trackml_parset.exceptions import PolicyError
from trackml_parset.kernels import correct_batch
from trackml_parset.traits import BoundClass, ParameterTrait, correct


def test_unbound_is_identity():
    for v in (-1e12, -0.5, 0.0, 3.25, 1e15):
        assert correct(BoundClass.UNBOUND, -math.inf, math.inf, v) == v
    assert ParameterTrait.unbound().correct(math.inf) == math.inf


def test_bounded_clamps_and_keeps_inside_values():
    trait = ParameterTrait.bounded(0.0, np.pi)
    assert trait.correct(-3.0) == 0.0
    assert trait.correct(np.pi + 1.0) == np.pi
    assert trait.correct(-math.inf) == 0.0
    assert trait.correct(math.inf) == np.pi
    rng = np.random.default_rng(7)
    for v in rng.uniform(-10.0, 10.0, size=500):
        c = trait.correct(v)
        assert 0.0 <= c <= np.pi
        if 0.0 <= v <= np.pi:
            assert c == v


def test_cyclic_folds_by_whole_periods():
    trait = ParameterTrait.cyclic(-np.pi, np.pi)
    period = trait.period
    rng = np.random.default_rng(11)
    for v in np.concatenate([rng.uniform(-1000.0, 300.0, size=1000), [-np.pi, np.pi, 0.0, 12443534120.0]]):
        c = trait.correct(v)
        assert -np.pi <= c < np.pi
        multiple = (c - v) / period
        assert abs(multiple - math.floor(multiple + 0.5)) < 1e-6


def test_cyclic_examples():
    assert correct(BoundClass.CYCLIC, -1.0, 1.0, 1.5) == -0.5
    assert correct(BoundClass.CYCLIC, -1.0, 1.0, 1.0) == -1.0
    assert correct(BoundClass.CYCLIC, -1.0, 1.0, -1.0) == -1.0
    # rounding would land on the upper limit
    assert correct(BoundClass.CYCLIC, 0.0, 1.0, -1e-20) == 0.0


def test_cyclic_inside_range_is_exact():
    trait = ParameterTrait.cyclic(-np.pi, np.pi)
    for v in (0.3 * np.pi, -0.15 * np.pi, -np.pi, 0.999 * np.pi):
        assert trait.correct(v) == v


def test_batch_matches_scalar_correction():
    kinds = np.array([0, 1, 2], dtype=np.int64)
    mins = np.array([-np.inf, 0.0, -np.pi])
    maxs = np.array([np.inf, np.pi, np.pi])
    raw = np.array([5.0, 7.0, 7.0])
    out = correct_batch(raw, kinds, mins, maxs)
    assert out[0] == 5.0
    assert out[1] == np.pi
    assert out[2] == correct(BoundClass.CYCLIC, -np.pi, np.pi, 7.0)
    # input untouched
    assert raw[1] == 7.0


def test_contains_reflects_interval_kind():
    assert ParameterTrait.bounded(0.0, 1.0).contains(1.0)
    assert not ParameterTrait.cyclic(0.0, 1.0).contains(1.0)
    assert ParameterTrait.cyclic(0.0, 1.0).contains(0.0)
    assert ParameterTrait.unbound().contains(-1e300)


@pytest.mark.parametrize(
    "bound_class, lo, hi",
    [
        (BoundClass.BOUNDED, 1.0, 1.0),
        (BoundClass.BOUNDED, 2.0, 1.0),
        (BoundClass.CYCLIC, -math.inf, 0.0),
        (BoundClass.CYCLIC, 0.0, math.nan),
        (BoundClass.UNBOUND, 0.0, 1.0),
        (7, 0.0, 1.0),
    ],
)
def test_invalid_traits_are_rejected(bound_class, lo, hi):
    with pytest.raises(PolicyError):
        ParameterTrait(bound_class, lo, hi)


def test_trait_coerces_codes():
    trait = ParameterTrait(2, -1, 1)
    assert trait.bound_class is BoundClass.CYCLIC
    assert isinstance(trait.min, float)
    assert trait.period == 2.0


def test_cyclic_huge_magnitudes_stay_in_range():
    trait = ParameterTrait.cyclic(-np.pi, np.pi)
    for e in range(0, 309):
        for m in (1.0, 3.7, 7.123):
            for v in (m * 10.0 ** e, -m * 10.0 ** e):
                if not math.isfinite(v):
                    continue
                c = trait.correct(v)
                assert -np.pi <= c < np.pi, (v, c)
    assert -np.pi <= trait.correct(np.finfo(np.float64).max) < np.pi
    assert -np.pi <= trait.correct(-np.finfo(np.float64).max) < np.pi
