import numpy as np

from verify.diff_runner import compare_outputs
from verify.reference import reference_affine
from verify.tolerances import Tolerances, infer_tolerances


def test_compare_outputs_ok_and_mismatch():
    tol = Tolerances(1e-5, 1e-5)
    ref = np.array([1.0, 2.0, 3.0], dtype=np.float32)
    assert compare_outputs(ref + 1e-7, ref, tol).ok
    res = compare_outputs(np.array([1.0, 2.5, 3.0], dtype=np.float32), ref, tol)
    assert not res.ok
    assert res.first_bad_index == 1
    assert np.isclose(res.max_abs_err, 0.5)


def test_compare_outputs_non_finite():
    tol = Tolerances(1e-5, 1e-5)
    res = compare_outputs(np.array([np.nan, 1.0]), np.array([0.0, 1.0]), tol)
    assert not res.ok
    assert res.first_bad_index == 0
    assert not compare_outputs(np.ones(3), np.ones(4), tol).ok


def test_reference_affine_clamps_tanh():
    x = np.array([[100.0]], dtype=np.float32)
    out = reference_affine(x, np.ones((1, 1)), np.zeros(1), "tanh")
    assert out.dtype == np.float32
    assert out[0, 0] == np.tanh(np.float32(15.0))


def test_tolerances_grow_with_inner_size():
    small = infer_tolerances("identity", 8)
    large = infer_tolerances("identity", 4096)
    assert large.atol > small.atol
    assert large.atol <= 1e-3
    assert infer_tolerances("tanh", 16).to_dict() == {"atol": 1e-5, "rtol": 1e-4}


def test_compare_outputs_infinities_must_match_in_sign():
    tol = Tolerances(1e-5, 1e-5)
    res = compare_outputs(np.array([np.inf, 1.0]), np.array([-np.inf, 1.0]), tol)
    assert res.ok is False
    assert res.first_bad_index == 0
    assert compare_outputs(np.array([np.inf, np.nan, 1.0]), np.array([np.inf, np.nan, 1.0]), tol).ok


def test_compare_outputs_index_is_in_caller_coordinates():
    tol = Tolerances(1e-5, 1e-5)
    got = np.array([np.nan, np.nan, 1.0, 5.0])
    ref = np.array([np.nan, np.nan, 1.0, 1.0])
    res = compare_outputs(got, ref, tol)
    assert not res.ok
    assert res.first_bad_index == 3
    assert "got=5.0" in res.summary
