"""
Maximum Likelihood Estimation -- from scratch

Provides a generic MLE engine. The model is a function returning the
log-likelihood contribution of every observation; the engine maximizes
their mean and reports three sets of standard errors:

    information matrix   cov = I^{-1} / T
    outer product        cov = J^{-1} / T
    sandwich             cov = I^{-1} J I^{-1} / T

where I = -d2 mean(LL_t)/db db' and J = sum_t s_t s_t' / T with the
scores s_t = d LL_t / db. Under a correctly specified likelihood the three
agree asymptotically; a large gap is a sign of misspecification.
"""

import logging

import numpy as np
from scipy import stats

from .optim import minimize_fn, numerical_hessian, numerical_jacobian
from .utils import inv_sym, std_from_cov, symmetrize

logger = logging.getLogger(__name__)


def mle(loglik_fn, start, y, x, lower=None, upper=None, method=None, options=None):
    """
    Generic MLE via scipy.optimize.minimize.

    Parameters
    ----------
    loglik_fn : callable
        loglik_fn(params, y, x) -> ndarray (T,) of log-likelihood
        contributions.
    start : ndarray
        Starting parameter values.
    y, x : ndarray
        Data, passed on to loglik_fn untouched.
    lower, upper : ndarray or None
        Optional box bounds on the parameters.
    method : str or None
        Optimization method (BFGS, or L-BFGS-B with bounds).
    options : dict or None
        Optimizer options, e.g. {"maxiter": 500}.

    Returns
    -------
    dict with keys:
        beta      : MLE estimates
        std_hess  : standard errors from the information matrix
        std_grad  : standard errors from the outer product of gradients
        std_sandw : sandwich standard errors
        cov_hess, cov_grad, cov_sandw : the corresponding covariances
        info      : I, minus the Hessian of the mean log-likelihood
        opg       : J, the outer product of the scores divided by T
        loglik    : log-likelihood contributions at the estimate (T,)
        nobs      : T

    Raises
    ------
    ConvergenceError
        If the optimizer fails.
    SingularDesignError
        If I or J cannot be inverted.
    """
    T = len(loglik_fn(np.asarray(start, dtype=float), y, x))

    def neg_mean_ll(b):
        return -np.mean(loglik_fn(b, y, x))

    res = minimize_fn(neg_mean_ll, start, lower=lower, upper=upper,
                      method=method, options=options)
    beta = res.x
    logger.debug("MLE converged after %s iterations, mean LL %.6g", res.get("nit"), -res.fun)

    info = -numerical_hessian(lambda b: np.mean(loglik_fn(b, y, x)), beta)
    scores = numerical_jacobian(lambda b: loglik_fn(b, y, x), beta).reshape(T, -1)
    opg = symmetrize(scores.T @ scores / T)

    info_inv = inv_sym(info)
    cov_hess = info_inv / T
    cov_grad = inv_sym(opg) / T
    cov_sandw = symmetrize(info_inv @ opg @ info_inv) / T

    return dict(
        beta=beta,
        std_hess=std_from_cov(cov_hess),
        std_grad=std_from_cov(cov_grad),
        std_sandw=std_from_cov(cov_sandw),
        cov_hess=cov_hess,
        cov_grad=cov_grad,
        cov_sandw=cov_sandw,
        info=info,
        opg=opg,
        loglik=loglik_fn(beta, y, x),
        nobs=T,
    )


def lr_test(loglik_u, loglik_r, df):
    """
    Likelihood ratio test of a restricted against an unrestricted model.

        LR = 2 * (sum LL_u - sum LL_r)  ~  chi2(df)

    Parameters
    ----------
    loglik_u, loglik_r : ndarray (T,)
        Log-likelihood contributions at the unrestricted and restricted
        estimates (the "loglik" entry returned by `mle`).
    df : int
        Number of restrictions.

    Returns
    -------
    dict with keys:
        stat    : LR statistic
        p_value : p-value from chi2(df)
    """
    lr = 2 * (np.sum(loglik_u) - np.sum(loglik_r))
    return dict(stat=lr, p_value=stats.chi2.sf(lr, df))
