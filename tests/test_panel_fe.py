import numpy as np
import pandas as pd
import pytest
from numpy.testing import assert_allclose

from econcore import covariance as cv
from econcore import ols
from econcore import panel_fe as pf
from econcore.exceptions import SingularDesignError

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------


@pytest.fixture
def panel(rng):
    """Panel with entity effects correlated with the regressors."""
    T, K, N = 20, 2, 8
    alpha = rng.standard_normal(N)
    X = rng.standard_normal((T, K, N)) + alpha[None, None, :]
    Y = 0.7 * X[:, 0, :] - 0.3 * X[:, 1, :] + 2 * alpha + rng.standard_normal((T, N))
    return Y, X


@pytest.fixture
def panel_nan(panel):
    Y, X = panel
    Y, X = Y.copy(), X.copy()
    Y[0, 1] = np.nan
    X[3, 0, 2] = np.nan
    X[5, 1, 2] = np.nan
    Y[7:10, 4] = np.nan
    return Y, X

# ---------------------------------------------------------------------
# Reshaping
# ---------------------------------------------------------------------


def test_panel_reshape():
    df = pd.DataFrame({
        "firm": ["b", "a", "a", "b", "a"],
        "year": [2001, 2001, 2000, 2000, 2002],
        "y": [1.0, 2.0, 3.0, 4.0, 5.0],
        "x1": [10.0, 20.0, 30.0, 40.0, 50.0],
        "x2": [0.1, 0.2, 0.3, 0.4, 0.5],
    })
    out = pf.panel_reshape(df, entity="firm", time="year", y="y", x=["x1", "x2"])

    assert list(out["times"]) == [2000, 2001, 2002]
    assert list(out["entities"]) == ["a", "b"]
    assert out["Y"].shape == (3, 2)
    assert out["X"].shape == (3, 2, 2)
    assert_allclose(out["Y"][:2], [[3.0, 4.0], [2.0, 1.0]])
    assert out["Y"][2, 0] == 5.0
    assert np.isnan(out["Y"][2, 1])
    assert_allclose(out["X"][1, :, 1], [10.0, 0.1])
    assert np.all(np.isnan(out["X"][2, :, 1]))


def test_panel_reshape_duplicates():
    df = pd.DataFrame({"i": [1, 1], "t": [1, 1], "y": [0.0, 1.0], "x": [0.0, 1.0]})
    with pytest.raises(ValueError):
        pf.panel_reshape(df, "i", "t", "y", ["x"])

# ---------------------------------------------------------------------
# Fixed-effect transforms
# ---------------------------------------------------------------------


def test_indiv_effects_balanced(panel):
    Y, X = panel
    Yd, Xd = pf.fixed_indiv_effects(Y, X)
    assert_allclose(Yd, Y - Y.mean(axis=0))
    assert_allclose(Xd, X - X.mean(axis=0))
    assert_allclose(Yd.mean(axis=0), 0, atol=1e-12)


def test_indiv_effects_does_not_modify_input(panel_nan):
    Y, X = panel_nan
    Y0, X0 = Y.copy(), X.copy()
    pf.fixed_indiv_effects(Y, X, zero_missing=True)
    assert_allclose(Y, Y0, equal_nan=True)
    assert_allclose(X, X0, equal_nan=True)


def test_missing_pairing(panel_nan):
    Y, X = panel_nan
    Yd, Xd = pf.fixed_indiv_effects(Y, X, zero_missing=False)

    # a missing regressor marks the whole observation missing
    assert np.isnan(Yd[3, 2]) and np.isnan(Yd[5, 2])
    assert np.all(np.isnan(Xd[3, :, 2]))
    # ... and the mean of that entity skips it
    ok = np.ones(Y.shape[0], dtype=bool)
    ok[[3, 5]] = False
    assert_allclose(Yd[ok, 2], Y[ok, 2] - Y[ok, 2].mean())
    assert_allclose(Xd[ok, 0, 2], X[ok, 0, 2] - X[ok, 0, 2].mean())
    # other cells of the same period are untouched
    assert_allclose(Yd[3, 0], Y[3, 0] - Y[:, 0].mean())


def test_indiv_effects_idempotent(panel_nan):
    Y, X = panel_nan
    Yd, Xd = pf.fixed_indiv_effects(Y, X, zero_missing=False)
    Ydd, Xdd = pf.fixed_indiv_effects(Yd, Xd, zero_missing=False)
    assert_allclose(Ydd, Yd, atol=1e-12, equal_nan=True)
    assert_allclose(Xdd, Xd, atol=1e-12, equal_nan=True)


def test_indiv_effects_zero_filled_by_default(panel_nan):
    Y, X = panel_nan
    Yd, Xd = pf.fixed_indiv_effects(Y, X)
    assert not np.isnan(Yd).any() and not np.isnan(Xd).any()
    assert Yd[3, 2] == 0 and np.all(Xd[3, :, 2] == 0)
    assert_allclose(Yd.sum(axis=0), 0, atol=1e-12)
    Ydd, Xdd = pf.fixed_indiv_effects(Yd, Xd)
    assert_allclose(Ydd, Yd, atol=1e-12)
    assert_allclose(Xdd, Xd, atol=1e-12)


def test_entity_without_observations(panel):
    Y, X = panel
    Y = Y.copy()
    Y[:, 3] = np.nan

    Yd, Xd = pf.fixed_indiv_effects(Y, X, zero_missing=False)
    assert np.all(np.isnan(Yd[:, 3]))

    keep = [i for i in range(Y.shape[1]) if i != 3]
    Yk, Xk = pf.fixed_indiv_effects(Y[:, keep], X[:, :, keep])
    assert_allclose(Yd[:, keep], Yk)
    assert_allclose(Xd[:, :, keep], Xk)

    # by default the degenerate entity comes out as zeros
    Yz, Xz = pf.fixed_indiv_effects(Y, X)
    assert np.all(Yz[:, 3] == 0)
    assert np.all(Xz[:, :, 3] == 0)
    assert_allclose(Yz[:, keep], Yk)
    for transform in (pf.fixed_indiv_time_effects, pf.fixed_time_indiv_effects):
        Yz, Xz = transform(Y, X)
        assert np.all(Yz[:, 3] == 0) and np.all(Xz[:, :, 3] == 0)

    Yt, _ = pf.fixed_indiv_time_effects(Y, X)
    Ykt, _ = pf.fixed_indiv_time_effects(Y[:, keep], X[:, :, keep])
    assert_allclose(Yt[:, keep], Ykt)


def test_two_way_balanced(panel):
    Y, X = panel
    expected = Y - Y.mean(axis=0) - Y.mean(axis=1)[:, None] + Y.mean()
    Yd, Xd = pf.fixed_indiv_time_effects(Y, X, zero_missing=False)
    assert_allclose(Yd, expected, atol=1e-12)
    Yd2, Xd2 = pf.fixed_time_indiv_effects(Y, X)
    assert_allclose(Yd2, Yd, atol=1e-12)
    assert_allclose(Xd2, Xd, atol=1e-12)


def test_two_way_order_matters_unbalanced(panel_nan):
    Y, X = panel_nan
    Yd, _ = pf.fixed_indiv_time_effects(Y, X, zero_missing=False)
    Yd2, _ = pf.fixed_time_indiv_effects(Y, X, zero_missing=False)
    valid = ~np.isnan(Yd)
    # last pass is over periods: every period has mean zero
    assert_allclose(np.nanmean(Yd, axis=1), 0, atol=1e-12)
    assert_allclose(np.nanmean(Yd2, axis=0), 0, atol=1e-12)
    assert not np.allclose(Yd[valid], Yd2[valid])


def test_single_regressor_as_matrix(panel):
    Y, X = panel
    Yd, Xd = pf.fixed_indiv_effects(Y, X[:, 0, :])
    assert Xd.shape == (Y.shape[0], 1, Y.shape[1])


def test_bad_shapes(panel):
    Y, X = panel
    with pytest.raises(ValueError):
        pf.fixed_indiv_effects(Y[:, :-1], X)

# ---------------------------------------------------------------------
# Pooled panel OLS
# ---------------------------------------------------------------------


def test_panel_ols_matches_stacked(panel, stack):
    Y, X = panel
    T, K, N = X.shape
    ys, Xs = stack(Y, X)
    res = pf.panel_ols(Y, X, m=0)
    ref = ols.estimate(Xs, ys)
    u = ref["residuals"]

    assert_allclose(res["beta"], ref["beta"], rtol=1e-10)
    assert_allclose(res["residuals"].reshape(-1), u, atol=1e-10)
    assert_allclose(res["r2"], ref["r2"], rtol=1e-10)
    assert res["nobs"] == T * N
    assert list(res["nobs_t"]) == [N] * T

    entity = np.tile(np.arange(N), T)
    time = np.repeat(np.arange(T), N)
    tol = dict(rtol=1e-8, atol=1e-14)
    assert_allclose(res["cov"]["iid"], cv.cov_iid(Xs, u), **tol)
    assert_allclose(res["cov"]["white"], cv.cov_white(Xs, u), **tol)
    assert_allclose(res["cov"]["arellano"], cv.cov_cluster(Xs, u, entity), **tol)
    # Driscoll-Kraay without lags: clusters of periods
    assert_allclose(res["cov"]["dk"], cv.cov_cluster(Xs, u, time), **tol)


def test_driscoll_kraay_lags(panel):
    Y, X = panel
    res = pf.panel_ols(Y, X, m=2)
    u = res["residuals"]
    h = (X * u[:, None, :]).sum(axis=2)
    G1, G2 = h[1:].T @ h[:-1], h[2:].T @ h[:-2]
    B = h.T @ h + 2 / 3 * (G1 + G1.T) + 1 / 3 * (G2 + G2.T)
    Sxx_inv = np.linalg.inv(np.einsum("tki,tli->kl", X, X))
    assert_allclose(res["cov"]["dk"], Sxx_inv @ B @ Sxx_inv, rtol=1e-8, atol=1e-14)


def test_panel_clusters(panel):
    Y, X = panel
    N = Y.shape[1]
    own = pf.panel_ols(Y, X, clusters=np.arange(N))
    assert_allclose(own["cov"]["cluster"], own["cov"]["white"], rtol=1e-10, atol=1e-14)
    assert_allclose(own["cov"]["cluster_arellano"], own["cov"]["arellano"],
                    rtol=1e-10, atol=1e-14)

    grouped = pf.panel_ols(Y, X, clusters=np.array(list("aabbccdd")))
    assert set(grouped["se"]) == {"iid", "white", "dk", "arellano", "cluster",
                                  "cluster_arellano"}
    with pytest.raises(ValueError):
        pf.panel_ols(Y, X, clusters=np.arange(N - 1))


def test_panel_ols_missing(panel_nan, stack):
    Y, X = panel_nan
    with pytest.raises(ValueError):
        pf.panel_ols(Y, X)

    res = pf.panel_ols(Y, X, fix_nan=True)
    ys, Xs = stack(Y, X)
    ok = ~(np.isnan(ys) | np.isnan(Xs).any(axis=1))
    ref = ols.estimate(Xs[ok], ys[ok], cov_type="white")

    assert_allclose(res["beta"], ref["beta"], rtol=1e-10)
    assert_allclose(res["cov"]["white"], ref["cov"], rtol=1e-8, atol=1e-14)
    assert res["nobs"] == ok.sum()
    assert res["nobs_t"][0] == Y.shape[1] - 1
    assert res["nobs_t"][8] == Y.shape[1] - 1
    assert np.isnan(res["residuals"][3, 2])
    assert np.isnan(res["fitted"][3, 2])


def test_panel_ols_collinear(panel):
    Y, X = panel
    X = np.concatenate([X, 3 * X[:, :1, :]], axis=1)
    with pytest.raises(SingularDesignError):
        pf.panel_ols(Y, X)


def test_estimate_fe(rng):
    T, N = 30, 40
    alpha = 2 * rng.standard_normal(N)
    gamma = rng.standard_normal(T)
    x = rng.standard_normal((T, N)) + alpha + gamma[:, None]
    Y = 1.5 * x + alpha + gamma[:, None] + 0.5 * rng.standard_normal((T, N))
    X = x[:, None, :]

    pooled = pf.panel_ols(Y, X)
    fe = pf.estimate_fe(Y, X, effects="indiv_time", m=1)
    assert abs(fe["beta"][0] - 1.5) < 4 * fe["se"]["arellano"][0]
    assert abs(pooled["beta"][0] - 1.5) > abs(fe["beta"][0] - 1.5)
    assert fe["Yd"].shape == (T, N)

    with pytest.raises(ValueError):
        pf.estimate_fe(Y, X, effects="time")
