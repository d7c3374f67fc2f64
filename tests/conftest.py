import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(999)


@pytest.fixture
def regression_data(rng):
    """Simple linear model y = 1 + 0.5 x1 - 2 x2 + u, homoskedastic."""
    T = 500
    x = rng.standard_normal((T, 2))
    X = np.column_stack([np.ones(T), x])
    beta = np.array([1.0, 0.5, -2.0])
    y = X @ beta + rng.standard_normal(T)
    return X, y, beta


def _stack_panel(Y, X):
    # rows ordered (t, i): period 0 for all entities, then period 1, ...
    T, K, N = X.shape
    return Y.reshape(T * N), X.transpose(0, 2, 1).reshape(T * N, K)


@pytest.fixture
def stack():
    return _stack_panel
