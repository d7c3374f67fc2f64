"""
Covariance Estimators -- iid, White, Newey-West, Hodrick-Hansen, clusters

Implements the covariance matrix of least-squares coefficients under the
usual assumptions about the residuals, plus the long-run covariance of a
matrix of moment conditions (used by GMM).

All estimators use the sandwich form

    V = (X'X)^{-1} * B * (X'X)^{-1}

where the "meat" B is built from the score contributions g_t = x_t * u_t.
No finite-sample (degrees of freedom) corrections are applied.
"""

import numpy as np
import pandas as pd

from .utils import inv_sym, symmetrize

KERNELS = ("bartlett", "flat")
COV_TYPES = ("iid", "white", "nw", "hh", "cluster")


def kernel_weights(m, kernel="bartlett"):
    """
    Weights on the lagged autocovariances 1..m.

    "bartlett" (Newey-West): w_s = 1 - s/(m+1), tent shaped.
    "flat" (Hodrick-Hansen): w_s = 1.

    Parameters
    ----------
    m : int
        Bandwidth (number of lags), m >= 0.
    kernel : str
        "bartlett" or "flat".

    Returns
    -------
    w : ndarray, shape (m,)
    """
    if int(m) != m or m < 0:
        raise ValueError(f"bandwidth must be a non-negative integer, got {m}")
    s = np.arange(1, int(m) + 1)
    if kernel == "bartlett":
        return 1 - s / (m + 1)
    if kernel == "flat":
        return np.ones(len(s))
    raise ValueError(f"kernel must be one of {KERNELS}, got {kernel!r}")


def long_run_cov(g, m=0, kernel="bartlett", demean=True):
    """
    Long-run covariance of sqrt(T) * mean(g_t).

        S = Gamma_0 + sum_{s=1}^{m} w_s (Gamma_s + Gamma_s')
        Gamma_s = sum_t g_t g_{t-s}' / T

    Parameters
    ----------
    g : ndarray, shape (T,) or (T, M)
        Moment conditions or score contributions, one row per period.
    m : int
        Number of lags. m = 0 gives g'g/T.
    kernel : str
        "bartlett" (Newey-West) or "flat" (Hodrick-Hansen).
    demean : bool
        Subtract the column means before forming the products.

    Returns
    -------
    S : ndarray, shape (M, M)
    """
    g = np.asarray(g, dtype=float)
    g = g[:, None] if g.ndim == 1 else g
    T = g.shape[0]
    if demean:
        g = g - g.mean(axis=0)

    S = g.T @ g / T
    for s, w in enumerate(kernel_weights(m, kernel), start=1):
        Gamma_s = g[s:].T @ g[:-s] / T
        S = S + w * (Gamma_s + Gamma_s.T)
    # lagged cross terms are not symmetric one by one
    return symmetrize(S)


def cluster_sum_cov(g, clusters):
    """
    Sum the rows of g within each cluster, then average the outer products.

        S = sum_c (sum_{t in c} g_t)(sum_{t in c} g_t)' / T

    Parameters
    ----------
    g : ndarray, shape (T, M)
    clusters : ndarray, shape (T,)
        Cluster id of each row.

    Returns
    -------
    S : ndarray, shape (M, M)
    """
    g = np.asarray(g, dtype=float)
    g = g[:, None] if g.ndim == 1 else g
    clusters = np.asarray(clusters)
    if clusters.shape != (g.shape[0],):
        raise ValueError("clusters must have one entry per row of g")
    g_c = pd.DataFrame(g).groupby(clusters).sum().values
    return g_c.T @ g_c / g.shape[0]


def ols_scores(X, U):
    """
    Score contributions of least squares, g_t = u_t (x) x_t.

    For several equations the blocks follow vec(b): all coefficients of
    equation 1, then equation 2, and so on.

    Returns
    -------
    g : ndarray, shape (T, K*n)
    """
    U = U[:, None] if U.ndim == 1 else U
    return np.hstack([X * U[:, [j]] for j in range(U.shape[1])])


def _sandwich(X, U, S):
    # S is the covariance of the scores scaled by 1/T
    T = X.shape[0]
    n = 1 if U.ndim == 1 else U.shape[1]
    bread = np.kron(np.eye(n), inv_sym(X.T @ X))
    return symmetrize(bread @ (T * S) @ bread)


def cov_iid(X, U):
    """
    Classical (Gauss-Markov) covariance of the OLS coefficients.

    V = sigma2 * (X'X)^{-1}            (one equation)
    V = Sigma_u (x) (X'X)^{-1}         (several equations, vec(b) order)

    sigma2 and Sigma_u use the denominator T.
    """
    T = X.shape[0]
    U2 = U[:, None] if U.ndim == 1 else U
    Sigma_u = U2.T @ U2 / T
    return symmetrize(np.kron(Sigma_u, inv_sym(X.T @ X)))


def cov_white(X, U):
    """
    White (1980) heteroskedasticity-consistent covariance.

    V = (X'X)^{-1} [sum_t g_t g_t'] (X'X)^{-1},  g_t = x_t u_t
    """
    return _sandwich(X, U, long_run_cov(ols_scores(X, U), 0, demean=False))


def cov_nw(X, U, m, kernel="bartlett"):
    """
    HAC covariance: Newey-West (bartlett) or Hodrick-Hansen (flat).

    m = 0 gives exactly the White estimator.
    """
    return _sandwich(X, U, long_run_cov(ols_scores(X, U), m, kernel, demean=False))


def cov_cluster(X, U, clusters):
    """
    One-way cluster-robust covariance.

    The score contributions are summed within each cluster before taking
    outer products. Equals cov_white when every observation is its own
    cluster.
    """
    return _sandwich(X, U, cluster_sum_cov(ols_scores(X, U), clusters))


def ols_cov(X, U, cov_type="iid", m=0, clusters=None):
    """
    Dispatch to one of the covariance estimators.

    Parameters
    ----------
    X : ndarray, shape (T, K)
    U : ndarray, shape (T,) or (T, n)
        Residuals.
    cov_type : str
        "iid", "white", "nw" (Newey-West), "hh" (Hodrick-Hansen) or
        "cluster".
    m : int
        Bandwidth for "nw" and "hh".
    clusters : ndarray or None
        Cluster ids, required for "cluster".

    Returns
    -------
    V : ndarray, shape (K*n, K*n)
    """
    if cov_type == "iid":
        return cov_iid(X, U)
    if cov_type == "white":
        return cov_white(X, U)
    if cov_type == "nw":
        return cov_nw(X, U, m, "bartlett")
    if cov_type == "hh":
        return cov_nw(X, U, m, "flat")
    if cov_type == "cluster":
        if clusters is None:
            raise ValueError("cov_type='cluster' requires a clusters vector")
        return cov_cluster(X, U, clusters)
    raise ValueError(f"cov_type must be one of {COV_TYPES}, got {cov_type!r}")
