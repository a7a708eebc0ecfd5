import numpy as np
import pytest

from mc_sched.core.sim.np_value import (
    SAMPLES,
    UNDEF,
    NPArray,
    NPError,
    NPPercentile,
    NPScalar,
    add,
    max_,
    mean,
    percentile90,
    rand_norm90,
)


def _rng():
    return np.random.default_rng(1234)


def test_rand_norm90_shape_and_type():
    v = rand_norm90(2, 4, _rng())
    assert v.array.shape == (SAMPLES,)
    assert v.array.dtype.kind == "i"
    assert (v.array >= 0).all()


def test_rand_norm90_clamps_at_zero():
    v = rand_norm90(0, 1, _rng())
    assert v.array.min() == 0


def test_rand_norm90_percentiles_near_bounds():
    p = percentile90(rand_norm90(10, 20, _rng()))
    assert isinstance(p, NPPercentile)
    assert 8 <= p.lb <= 11
    assert 14 <= p.med <= 16
    assert 19 <= p.ub <= 22


def test_rand_norm90_is_reproducible_with_seed():
    a = rand_norm90(3, 9, np.random.default_rng(7))
    b = rand_norm90(3, 9, np.random.default_rng(7))
    assert np.array_equal(a.array, b.array)


def test_array_shape_is_checked():
    with pytest.raises(ValueError):
        NPArray(np.zeros(3))


def test_errors_propagate_through_add_and_max():
    err = NPError("no estimate for task X")
    arr = rand_norm90(1, 2, _rng())
    assert add([NPScalar(1), err, arr]) == err
    assert max_([arr, err]) == err
    assert percentile90(err) == err
    assert add([UNDEF]) == UNDEF


def test_scalar_arithmetic():
    assert add([NPScalar(2), NPScalar(3)]) == NPScalar(5)
    assert max_([NPScalar(2), NPScalar(3)]) == NPScalar(3)
    assert percentile90(NPScalar(4)) == NPPercentile(lb=4, med=4, ub=4)


def test_add_arrays_and_scalars_elementwise():
    a = NPArray(np.arange(SAMPLES))
    b = NPArray(np.ones(SAMPLES, dtype=np.int64))
    out = add([a, NPScalar(2), b])
    assert isinstance(out, NPArray)
    assert np.array_equal(out.array, np.arange(SAMPLES) + 3)


def test_max_arrays_and_scalar_elementwise():
    a = NPArray(np.arange(SAMPLES))
    b = NPArray(np.full(SAMPLES, 500))
    out = max_([a, b, NPScalar(700)])
    assert isinstance(out, NPArray)
    assert out.array[0] == 700
    assert out.array[-1] == SAMPLES - 1


def test_percentile90_indices():
    p = percentile90(NPArray(np.arange(SAMPLES)[::-1].copy()))
    assert p == NPPercentile(lb=50, med=500, ub=950)


def test_mean():
    assert mean(NPArray(np.full(SAMPLES, 3))) == NPScalar(3.0)
    assert mean(NPScalar(2)) == NPScalar(2)
    assert mean(UNDEF) == UNDEF
