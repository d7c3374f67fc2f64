"""
Regression diagnostics -- fit criteria, multicollinearity, normality and
heteroskedasticity tests.
"""

import numpy as np
from scipy import stats

from .utils import add_const, is_constant, ols_fit, r_squared


def regression_fit(u, r2, k):
    """
    Adjusted R2 and information criteria of a regression.

        R2adj = 1 - (1 - R2)(T - 1)/(T - k)
        AIC   = ln(sigma2) + 2k/T
        BIC   = ln(sigma2) + k ln(T)/T

    with sigma2 = Var(u) (denominator T), i.e. the Gaussian
    log-likelihood criteria per observation.

    Parameters
    ----------
    u : ndarray, shape (T,) or (T, n)
        Residuals.
    r2 : float or ndarray (n,)
        R2 of each equation.
    k : int
        Number of regressors (including the constant).

    Returns
    -------
    dict with keys r2adj, aic, bic.
    """
    u = np.asarray(u, dtype=float)
    T = u.shape[0]
    sigma2 = np.var(u, axis=0)
    return dict(
        r2adj=1 - (1 - np.asarray(r2)) * (T - 1) / (T - k),
        aic=np.log(sigma2) + 2 * k / T,
        bic=np.log(sigma2) + k * np.log(T) / T,
    )


def vif(X):
    """
    Variance inflation factors.

    Each non-constant column j is regressed on the other non-constant
    columns and an intercept; VIF_j = 1/(1 - R2_j). A value above 5-10 is
    the usual warning sign of multicollinearity.

    Parameters
    ----------
    X : ndarray, shape (T, K)
        Regressors, with or without a constant column.

    Returns
    -------
    max_vif : float
        Largest VIF.
    all_vif : ndarray (K,)
        VIF of every column (NaN for constant columns).
    """
    X = np.asarray(X, dtype=float)
    cols = np.flatnonzero(~is_constant(X))
    if len(cols) == 0:
        raise ValueError("X has no non-constant column")

    all_vif = np.full(X.shape[1], np.nan)
    for j in cols:
        others = [c for c in cols if c != j]
        _, e = ols_fit(add_const(X[:, others]), X[:, j])
        all_vif[j] = 1 / (1 - r_squared(e, X[:, j]))

    return np.nanmax(all_vif), all_vif


def jarque_bera_test(x):
    """
    Jarque-Bera test of normality.

        JB = T/6 * (skew^2 + (kurt - 3)^2 / 4)  ~  chi2(2)

    Parameters
    ----------
    x : ndarray, shape (T,) or (T, n)
        Series (for instance regression residuals), tested column by column.

    Returns
    -------
    dict with keys stat, p_value, skew, kurt.
    """
    x = np.asarray(x, dtype=float)
    T = x.shape[0]
    xs = (x - x.mean(axis=0)) / x.std(axis=0)
    skew = np.mean(xs ** 3, axis=0)
    kurt = np.mean(xs ** 4, axis=0)
    jb = T / 6 * (skew ** 2 + (kurt - 3) ** 2 / 4)
    return dict(stat=jb, p_value=stats.chi2.sf(jb, 2), skew=skew, kurt=kurt)


def white_het_test(u, X):
    """
    White's test for heteroskedasticity.

    Regresses squared residuals on the regressors, their squares and cross
    products. Under H0 (homoskedasticity) LM = T * R2 ~ chi2(p), where p
    is the number of auxiliary regressors (excluding the constant).

    Parameters
    ----------
    u : ndarray, shape (T,)
        OLS residuals.
    X : ndarray, shape (T, k)
        Design matrix used in the original regression.

    Returns
    -------
    dict with keys:
        stat    : LM statistic
        df      : degrees of freedom
        p_value : p-value (from chi2)
        reject  : bool, True if p < 0.05
    """
    u = np.asarray(u, dtype=float)
    X = np.asarray(X, dtype=float)
    x = X[:, ~is_constant(X)]
    k = x.shape[1]
    cross = [x[:, i] * x[:, j] for i in range(k) for j in range(i, k)]
    Z = np.column_stack([x] + cross) if cross else x
    # dummies reappear as their own squares
    Z = np.unique(Z, axis=1)
    Z = Z[:, ~is_constant(Z)]

    esq = u ** 2
    _, e = ols_fit(add_const(Z), esq)
    stat = len(u) * r_squared(e, esq)
    df = Z.shape[1]
    p_value = stats.chi2.sf(stat, df)
    return dict(stat=stat, df=df, p_value=p_value, reject=p_value < 0.05)
