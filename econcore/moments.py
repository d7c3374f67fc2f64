"""
Reference models for the MLE and GMM engines.

Each function follows the engine contracts:
    log-likelihood : f(params, y, x) -> (T,) contributions
    moments        : f(params, x)    -> (T, M) moment conditions
"""

import numpy as np


def gmm2_mom_fn(par, x):
    """
    Moment conditions for the mean and variance of x.

        g_t = [x_t - mu, (x_t - mu)^2 - s2]

    Exactly identified: the solution is the sample mean and the
    (uncorrected) sample variance.
    """
    mu, s2 = par
    x = np.ravel(x)
    return np.column_stack([x - mu, (x - mu) ** 2 - s2])


def gmm4_mom_fn(par, x):
    """
    Mean and variance from four moments of a normal variable.

        g_t = [x_t - mu, (x_t - mu)^2 - s2, (x_t - mu)^3, (x_t - mu)^4 - 3 s2^2]

    Over-identified (4 moments, 2 parameters).
    """
    mu, s2 = par
    e = np.ravel(x) - mu
    return np.column_stack([e, e ** 2 - s2, e ** 3, e ** 4 - 3 * s2 ** 2])


def iv_mom_fn(b, data):
    """
    Linear instrumental-variable moments, g_t = z_t (y_t - x_t'b).

    Parameters
    ----------
    b : ndarray (K,)
    data : tuple (y, X, Z) with y (T,), X (T, K) and Z (T, M).
    """
    y, X, Z = data
    return Z * (y - X @ b)[:, None]


def loglik_normal(par, y, x=None):
    """
    Log-likelihood contributions of y_t ~ N(mu, s2).

    x is unused; it is there to match the engine contract.
    """
    mu, s2 = par
    return -0.5 * np.log(2 * np.pi) - 0.5 * np.log(s2) - 0.5 * (y - mu) ** 2 / s2


def loglik_ols(par, y, x):
    """
    Log-likelihood contributions of the linear regression
    y_t = x_t'b + u_t with u_t ~ N(0, s2). par = [b, s2].
    """
    b, s2 = par[:-1], par[-1]
    u = y - x @ b
    return -0.5 * np.log(2 * np.pi) - 0.5 * np.log(s2) - 0.5 * u ** 2 / s2
