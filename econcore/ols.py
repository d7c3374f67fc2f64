"""
OLS -- Ordinary Least Squares with pluggable covariance estimators

Fits one regression, or several regressions sharing the same regressors
("seemingly unrelated" with identical X), and attaches the covariance of
the coefficients under the chosen assumption about the residuals.
"""

import numpy as np

from .covariance import ols_cov
from .utils import ols_fit, r_squared, std_from_cov


def estimate(X, Y, cov_type="iid", m=0, clusters=None):
    """
    OLS estimation: b solves X'X b = X'Y.

    Parameters
    ----------
    X : ndarray, shape (T, K)
        Design matrix (include a constant column for intercept).
    Y : ndarray, shape (T,) or (T, n)
        Outcome vector, or one column per equation.
    cov_type : str
        "iid", "white", "nw" (Newey-West), "hh" (Hodrick-Hansen) or
        "cluster". See `covariance.ols_cov`.
    m : int
        Bandwidth (lags) for "nw" and "hh".
    clusters : ndarray or None
        Cluster id of each observation, for "cluster".

    Returns
    -------
    dict with keys:
        beta      : coefficients, shape (K,) or (K, n)
        residuals : Y - X @ beta
        fitted    : X @ beta
        cov       : covariance of beta (of vec(beta) for several equations)
        se        : standard errors, same shape as beta
        r2        : 1 - Var(residuals)/Var(Y), per equation

    Raises
    ------
    SingularDesignError
        If X'X is singular.
    """
    X = np.asarray(X, dtype=float)
    Y = np.asarray(Y, dtype=float)
    if X.ndim != 2 or X.shape[0] != Y.shape[0]:
        raise ValueError("X must be (T, K) and row-aligned with Y")

    b, u = ols_fit(X, Y)
    V = ols_cov(X, u, cov_type=cov_type, m=m, clusters=clusters)
    se = std_from_cov(V).reshape(b.shape, order="F")

    return dict(
        beta=b,
        residuals=u,
        fitted=X @ b,
        cov=V,
        se=se,
        r2=r_squared(u, Y),
    )


def compare_cov(X, y, m=1, clusters=None):
    """
    Standard errors of the same OLS fit under every covariance estimator.

    Handy for seeing how much the inference depends on the assumed error
    structure.

    Returns
    -------
    dict with keys:
        beta : coefficient vector
        se   : dict cov_type -> standard errors ("cluster" only if
               clusters are given)
    """
    types = ["iid", "white", "nw", "hh"] + (["cluster"] if clusters is not None else [])
    se = {}
    for cov_type in types:
        res = estimate(X, y, cov_type=cov_type, m=m, clusters=clusters)
        se[cov_type] = res["se"]
    return dict(beta=res["beta"], se=se)
