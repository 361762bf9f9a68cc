import numpy as np
import pytest

from GazeTracker.ai.matrix import invert, solve_ridge


def test_invert_matches_numpy():
    rng = np.random.default_rng(3)
    a = rng.normal(size=(6, 6)) + 6.0 * np.eye(6)
    inv = invert(a)
    assert inv is not None
    assert np.allclose(inv, np.linalg.inv(a))
    assert np.allclose(a @ inv, np.eye(6))


def test_invert_needs_pivoting():
    a = np.array([[0.0, 1.0], [1.0, 0.0]])
    inv = invert(a)
    assert inv is not None
    assert np.allclose(inv, a)


def test_invert_singular_returns_none():
    a = np.array([[1.0, 2.0], [2.0, 4.0]])
    assert invert(a) is None


def test_invert_rejects_non_square():
    with pytest.raises(ValueError):
        invert(np.zeros((2, 3)))


def test_solve_ridge_close_to_least_squares():
    rng = np.random.default_rng(7)
    X = np.hstack([np.ones((30, 1)), rng.normal(size=(30, 3))])
    W_true = np.array([[100.0, -50.0], [20.0, 5.0], [-3.0, 40.0], [7.0, 7.0]])
    Y = X @ W_true
    W = solve_ridge(X, Y, 0.001)
    assert W is not None
    assert np.allclose(W, W_true, atol=0.05)


def test_solve_ridge_regularises_rank_deficient_input():
    X = np.array([[1.0, 2.0, 2.0], [1.0, 3.0, 3.0], [1.0, 4.0, 4.0]])
    Y = np.array([[1.0, 0.0], [2.0, 0.0], [3.0, 0.0]])
    # duplicate columns are singular without the lambda term
    assert solve_ridge(X, Y, 0.0) is None
    assert solve_ridge(X, Y, 0.001) is not None
