"""
Panel Data -- Fixed Effects (within transformation) and pooled OLS

Panels are stored as rectangular arrays:
    Y : (T, N)       one dependent variable per entity and period
    X : (T, K, N)    K regressors per entity and period
NaN marks a missing cell. A NaN in Y or in any regressor at (t, i) marks
the whole observation (t, i) as missing.

Fixed effects are removed by demeaning, and the pooled estimator comes
with Driscoll-Kraay and Arellano (1987) clustered standard errors.
"""

import numpy as np
import pandas as pd

from .covariance import long_run_cov
from .utils import check_rank, inv_sym, solve_sym, std_from_cov, symmetrize


def panel_reshape(df, entity, time, y, x):
    """
    Reshape a long (stacked) panel into rectangular arrays.

    Parameters
    ----------
    df : DataFrame
        One row per (entity, time) observation.
    entity, time : str
        Column names of the entity and period identifiers.
    y : str
        Dependent variable.
    x : list of str
        Regressors.

    Returns
    -------
    dict with keys:
        Y        : ndarray (T, N)
        X        : ndarray (T, K, N)
        times    : sorted period identifiers (length T)
        entities : sorted entity identifiers (length N)
    Combinations absent from df are NaN.
    """
    long = df.set_index([time, entity])
    if long.index.duplicated().any():
        raise ValueError("duplicate (time, entity) observations")

    Yw = long[y].unstack(entity)
    times, entities = Yw.index.values, Yw.columns.values
    X = np.stack([
        long[c].unstack(entity).reindex(index=times, columns=entities).values
        for c in x
    ], axis=1)

    return dict(Y=Yw.values.astype(float), X=X.astype(float),
                times=times, entities=entities)


def _as_panel(Y, X):
    Y = np.asarray(Y, dtype=float)
    X = np.asarray(X, dtype=float)
    if X.ndim == 2:
        X = X[:, None, :]
    if Y.ndim != 2 or X.ndim != 3 or X.shape[0] != Y.shape[0] or X.shape[2] != Y.shape[1]:
        raise ValueError("expected Y of shape (T, N) and X of shape (T, K, N)")
    return Y, X


def valid_obs(Y, X):
    """Boolean (T, N): True where neither Y nor any regressor is missing."""
    Y, X = _as_panel(Y, X)
    return ~(np.isnan(Y) | np.isnan(X).any(axis=1))


def _demean(Y, X, valid, axis):
    # axis=0: entity means over time, axis=1: period means across entities
    n = valid.sum(axis=axis)
    denom = np.where(n > 0, n, 1)
    Y0 = np.where(valid, Y, 0.0)
    X0 = np.where(valid[:, None, :], X, 0.0)
    if axis == 0:
        Yd = Y - Y0.sum(axis=0) / denom
        Xd = X - X0.sum(axis=0) / denom
    else:
        Yd = Y - (Y0.sum(axis=1) / denom)[:, None]
        Xd = X - (X0.sum(axis=2) / denom[:, None])[:, :, None]
    return Yd, Xd


def _finish(Yd, Xd, valid, zero_missing):
    fill = 0.0 if zero_missing else np.nan
    return (np.where(valid, Yd, fill),
            np.where(valid[:, None, :], Xd, fill))


def fixed_indiv_effects(Y, X, zero_missing=True):
    """
    Remove individual fixed effects: subtract each entity's time mean.

    The means use only the periods where the observation is valid. An
    entity without any valid period gets a mean of zero, so its demeaned
    values come out as zero and the other entities are untouched.

    Parameters
    ----------
    Y : ndarray, shape (T, N)
    X : ndarray, shape (T, K, N) or (T, N)
    zero_missing : bool
        Put 0 in the missing cells of the output (the default), so they
        contribute nothing to later sums. With False they are NaN, which
        keeps the validity mask for `panel_ols`.

    Returns
    -------
    Yd : ndarray, shape (T, N)
    Xd : ndarray, shape (T, K, N)
    """
    Y, X = _as_panel(Y, X)
    valid = valid_obs(Y, X)
    Yd, Xd = _demean(Y, X, valid, axis=0)
    return _finish(Yd, Xd, valid, zero_missing)


def fixed_indiv_time_effects(Y, X, zero_missing=True):
    """
    Remove individual and then time fixed effects.

    First the entity means, then (on the result) the cross-sectional mean
    of every period. For an unbalanced panel the order matters; see
    `fixed_time_indiv_effects` for the other order.
    """
    Y, X = _as_panel(Y, X)
    valid = valid_obs(Y, X)
    Yd, Xd = _demean(Y, X, valid, axis=0)
    Yd, Xd = _demean(Yd, Xd, valid, axis=1)
    return _finish(Yd, Xd, valid, zero_missing)


def fixed_time_indiv_effects(Y, X, zero_missing=True):
    """Remove time and then individual fixed effects."""
    Y, X = _as_panel(Y, X)
    valid = valid_obs(Y, X)
    Yd, Xd = _demean(Y, X, valid, axis=1)
    Yd, Xd = _demean(Yd, Xd, valid, axis=0)
    return _finish(Yd, Xd, valid, zero_missing)


def panel_ols(Y, X, m=0, clusters=None, fix_nan=False):
    """
    Pooled OLS on a panel, with a bundle of covariance estimators.

        theta = (sum_{t,i} x_ti x_ti')^{-1} sum_{t,i} x_ti y_ti

    Parameters
    ----------
    Y : ndarray, shape (T, N)
    X : ndarray, shape (T, K, N) or (T, N)
    m : int
        Lags in the Driscoll-Kraay estimator.
    clusters : ndarray, shape (N,) or None
        Cluster id of each entity.
    fix_nan : bool
        If True, observations with a missing value get zero weight (the
        input arrays are not modified). If False, missing values raise
        ValueError.

    Returns
    -------
    dict with keys:
        beta      : coefficient vector (K,)
        residuals : (T, N), NaN where missing
        fitted    : (T, N), NaN where missing
        r2        : 1 - Var(residuals)/Var(Y) over valid observations
        nobs      : number of valid observations
        nobs_t    : valid observations in each period (T,)
        cov, se   : dicts with keys
            iid              : sigma2 (sum x x')^{-1}
            white            : heteroskedasticity-robust
            dk               : Driscoll-Kraay, cross-sectional sums then
                               Newey-West with m lags
            arellano         : clustered by entity (within-entity
                               autocorrelation)
            cluster          : clusters of entities, within each period
                               (only with clusters)
            cluster_arellano : clusters of entities across all periods
                               (only with clusters)
    """
    Y, X = _as_panel(Y, X)
    T, K, N = X.shape
    valid = valid_obs(Y, X)
    if not fix_nan and not valid.all():
        raise ValueError("panel contains missing values, use fix_nan=True")

    Y0 = np.where(valid, Y, 0.0)
    X0 = np.where(valid[:, None, :], X, 0.0)

    check_rank(X0.transpose(0, 2, 1).reshape(-1, K))
    Sxx = np.einsum("tki,tli->kl", X0, X0)
    Sxy = np.einsum("tki,ti->k", X0, Y0)
    theta = solve_sym(Sxx, Sxy)

    fitted = np.einsum("tki,k->ti", X0, theta)
    u = Y0 - fitted
    h = X0 * u[:, None, :]
    nobs = int(valid.sum())

    Sxx_inv = inv_sym(Sxx)

    def sandwich(B):
        return symmetrize(Sxx_inv @ B @ Sxx_inv)

    cov = dict(
        iid=np.sum(u ** 2) / nobs * Sxx_inv,
        white=sandwich(np.einsum("tki,tli->kl", h, h)),
        dk=sandwich(T * long_run_cov(h.sum(axis=2), m, demean=False)),
    )
    h_i = h.sum(axis=0)
    cov["arellano"] = sandwich(h_i @ h_i.T)

    if clusters is not None:
        clusters = np.asarray(clusters)
        if clusters.shape != (N,):
            raise ValueError("clusters must have one entry per entity")
        codes = pd.factorize(clusters)[0]
        H = np.stack([h[:, :, codes == c].sum(axis=2) for c in range(codes.max() + 1)],
                     axis=2)
        cov["cluster"] = sandwich(np.einsum("tkg,tlg->kl", H, H))
        H_c = H.sum(axis=0)
        cov["cluster_arellano"] = sandwich(H_c @ H_c.T)

    return dict(
        beta=theta,
        residuals=np.where(valid, u, np.nan),
        fitted=np.where(valid, fitted, np.nan),
        r2=1 - np.var(u[valid]) / np.var(Y[valid]),
        nobs=nobs,
        nobs_t=valid.sum(axis=1),
        cov=cov,
        se={k: std_from_cov(v) for k, v in cov.items()},
    )


TRANSFORMS = {
    "indiv": fixed_indiv_effects,
    "indiv_time": fixed_indiv_time_effects,
    "time_indiv": fixed_time_indiv_effects,
}


def estimate_fe(Y, X, effects="indiv", m=0, clusters=None):
    """
    Fixed-effects (within) estimation with the panel covariance bundle.

    Parameters
    ----------
    Y : ndarray, shape (T, N)
    X : ndarray, shape (T, K, N)
        Regressors, without a constant (it is swept out by the demeaning).
    effects : str
        "indiv", "indiv_time" or "time_indiv".
    m : int
        Lags in the Driscoll-Kraay estimator.
    clusters : ndarray, shape (N,) or None

    Returns
    -------
    dict as returned by `panel_ols`, plus Yd, Xd (the demeaned arrays,
    NaN where missing).
    """
    if effects not in TRANSFORMS:
        raise ValueError(f"effects must be one of {list(TRANSFORMS)}, got {effects!r}")
    # NaN keeps the missing cells out of nobs and r2 in panel_ols
    Yd, Xd = TRANSFORMS[effects](Y, X, zero_missing=False)
    res = panel_ols(Yd, Xd, m=m, clusters=clusters, fix_nan=True)
    res.update(Yd=Yd, Xd=Xd)
    return res
