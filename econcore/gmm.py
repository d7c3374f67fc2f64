"""
Generalized Method of Moments (GMM)

The model is a moment function mom_fn(params, x) -> (T, M) whose column
means gbar should be zero at the true parameters. Four ways to estimate:

  - exactly identified (M = K): solve gbar(b) = 0
  - quadratic loss: minimize gbar' W gbar for a given W
  - iterated: re-estimate with W = S^{-1} until the estimates settle
  - linear combination: solve A gbar(b) = 0 for a K x M matrix A

S is the Newey-West long-run covariance of the moment conditions and D
the Jacobian of gbar. The covariance of the estimates is
(D'S^{-1}D)^{-1}/T in the exactly identified case and
(D'WD)^{-1} D'WSWD (D'WD)^{-1}/T in general.
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy import stats

from .covariance import long_run_cov
from .exceptions import ConvergenceError
from .optim import minimize_fn, numerical_jacobian, root_fn
from .utils import inv_sym, std_from_cov, symmetrize

logger = logging.getLogger(__name__)

GMM_TOL = 1e-3
GMM_MAX_ITER = 100


@dataclass(frozen=True)
class GmmState:
    """Estimates and the weighting matrix for the next iteration."""
    params: np.ndarray
    W: np.ndarray
    iteration: int = 0


def _moments(mom_fn, start, x):
    start = np.asarray(start, dtype=float)
    g = np.asarray(mom_fn(start, x), dtype=float)
    if g.ndim != 2:
        raise ValueError("mom_fn must return a (T, M) array")
    return start, g.shape


def _gbar_fn(mom_fn, x):
    return lambda b: np.mean(mom_fn(b, x), axis=0)


def _jacobian(gbar, b, M):
    return numerical_jacobian(gbar, b).reshape(M, len(b))


def gmm_exactly_identified(mom_fn, start, x, m=0):
    """
    Exactly identified GMM: solve mean(mom_fn(b, x)) = 0.

    Parameters
    ----------
    mom_fn : callable
        mom_fn(params, x) -> ndarray (T, M) with M = len(params).
    start : ndarray
        Starting values for the root finder.
    x : ndarray
        Data, passed on to mom_fn.
    m : int
        Newey-West lags in the covariance of the moments.

    Returns
    -------
    dict with keys:
        beta : estimates
        std  : standard errors
        cov  : (D'S^{-1}D)^{-1}/T
        D    : Jacobian of the mean moments (M, K)
        S    : long-run covariance of the moments (M, M)
        gbar : mean moments at the estimate
        nobs : T

    Raises
    ------
    ConvergenceError
        If the root finder fails.
    """
    start, (T, M) = _moments(mom_fn, start, x)
    if M != len(start):
        raise ValueError(f"exactly identified GMM needs {len(start)} moments, got {M}")

    gbar = _gbar_fn(mom_fn, x)
    b = root_fn(gbar, start).x

    D = _jacobian(gbar, b, M)
    S = long_run_cov(mom_fn(b, x), m)
    cov = inv_sym(D.T @ inv_sym(S) @ D) / T

    return dict(beta=b, std=std_from_cov(cov), cov=cov, D=D, S=S,
                gbar=gbar(b), nobs=T)


def gmm_quad_loss(mom_fn, start, x, W, m=0, skip_cov=False, method=None, options=None):
    """
    GMM by minimizing the quadratic form gbar' W gbar.

    The objective is scaled by T (the J-statistic scale), which leaves the
    minimizer unchanged but keeps the optimizer's gradient tolerance
    meaningful.

    Parameters
    ----------
    mom_fn : callable
        mom_fn(params, x) -> ndarray (T, M), M >= K.
    start : ndarray
    x : ndarray
    W : ndarray, shape (M, M)
        Weighting matrix.
    m : int
        Newey-West lags in S.
    skip_cov : bool
        Only compute the point estimate (cov, std, D and S are None).
    method, options
        Passed on to the optimizer.

    Returns
    -------
    dict with keys:
        beta : estimates
        std  : standard errors
        cov  : (D'WD)^{-1} D'WSWD (D'WD)^{-1} / T
        D, S : Jacobian of gbar and long-run covariance of the moments
        gbar : mean moments at the estimate
        loss : gbar' W gbar at the estimate
        W    : the weighting matrix
        nobs : T
    """
    start, (T, M) = _moments(mom_fn, start, x)
    W = np.asarray(W, dtype=float)
    if W.shape != (M, M):
        raise ValueError(f"W must be {M} x {M}, got {W.shape}")

    gbar = _gbar_fn(mom_fn, x)

    W_sym = W + W.T

    def loss(b):
        g = gbar(b)
        return T * (g @ W @ g)

    def loss_grad(b):
        # vanishes at the minimum, unlike a finite difference of the loss
        return T * (_jacobian(gbar, b, M).T @ W_sym @ gbar(b))

    b = minimize_fn(loss, start, method=method, options=options, jac=loss_grad).x
    g_hat = gbar(b)
    out = dict(beta=b, std=None, cov=None, D=None, S=None,
               gbar=g_hat, loss=g_hat @ W @ g_hat, W=W, nobs=T)
    if skip_cov:
        return out

    D = _jacobian(gbar, b, M)
    S = long_run_cov(mom_fn(b, x), m)
    DWD_inv = inv_sym(D.T @ W @ D)
    cov = symmetrize(DWD_inv @ D.T @ W @ S @ W @ D @ DWD_inv) / T
    out.update(std=std_from_cov(cov), cov=cov, D=D, S=S)
    return out


def gmm_iterated(mom_fn, start, x, W0, m=0, tol=GMM_TOL, max_iter=GMM_MAX_ITER,
                 method=None, options=None):
    """
    Iterated GMM: refit with W = S^{-1} until the estimates stop changing.

    Each iteration minimizes gbar' W gbar with the current W and then sets
    W to the inverse of the long-run covariance of the moments at the new
    estimates. The first iteration uses W0; convergence is only tested
    between fits that use a re-estimated W, so at least two iterations are
    done and the result never rests on W0. The loop stops when
    max |b_new - b_old| < tol.

    Parameters
    ----------
    mom_fn : callable
        mom_fn(params, x) -> ndarray (T, M).
    start : ndarray
    x : ndarray
    W0 : ndarray, shape (M, M)
        Initial weighting matrix (for instance identity on a subset of
        the moments).
    m : int
        Newey-West lags in S.
    tol : float
        Convergence threshold on the largest parameter change.
    max_iter : int
        Maximum number of iterations.
    method, options
        Passed on to the optimizer.

    Returns
    -------
    dict as returned by `gmm_quad_loss` for the final W, plus:
        iterations : number of iterations
        W_next     : S^{-1} at the final estimates
        j_test     : Hansen's test of the over-identifying restrictions
                     (None when exactly identified)

    Raises
    ------
    ConvergenceError
        If tol is not reached within max_iter iterations.
    """
    state = GmmState(params=np.asarray(start, dtype=float), W=np.asarray(W0, dtype=float))
    while True:
        if state.iteration >= max_iter:
            raise ConvergenceError(
                f"iterated GMM did not converge in {max_iter} iterations", x=state.params)
        fit = gmm_quad_loss(mom_fn, state.params, x, state.W, skip_cov=True,
                            method=method, options=options)
        S = long_run_cov(mom_fn(fit["beta"], x), m)
        new = GmmState(params=fit["beta"], W=inv_sym(S), iteration=state.iteration + 1)
        change = np.max(np.abs(new.params - state.params))
        logger.debug("GMM iteration %d: max |change| = %.3g", new.iteration, change)
        W_used, state = state.W, new
        # the W0 fit is the starting point, not a step of the fixed point
        if state.iteration >= 2 and change < tol:
            break

    out = gmm_quad_loss(mom_fn, state.params, x, W_used, m=m,
                        method=method, options=options)
    g = mom_fn(out["beta"], x)
    out.update(
        iterations=state.iteration,
        W_next=state.W,
        j_test=j_test(g, len(state.params), m) if g.shape[1] > len(state.params) else None,
    )
    return out


def gmm_linear_combination(mom_fn, start, x, A, m=0):
    """
    GMM by linear combination of the moments: solve A gbar(b) = 0.

    Parameters
    ----------
    mom_fn : callable
        mom_fn(params, x) -> ndarray (T, M).
    start : ndarray
    x : ndarray
    A : ndarray, shape (K, M)
        Combination matrix; an (M, K) matrix is transposed.
    m : int
        Newey-West lags in S.

    Returns
    -------
    dict with keys beta, std, cov, D, S, gbar, A, nobs.
    cov is the exactly identified formula applied to the K combined
    moments: D -> A D and S -> A S A'.
    """
    start, (T, M) = _moments(mom_fn, start, x)
    K = len(start)
    A = np.atleast_2d(np.asarray(A, dtype=float))
    if A.shape == (M, K) and M != K:
        A = A.T
    if A.shape != (K, M):
        raise ValueError(f"A must be {K} x {M}, got {A.shape}")

    gbar = _gbar_fn(mom_fn, x)
    b = root_fn(lambda p: A @ gbar(p), start).x

    D = _jacobian(gbar, b, M)
    S = long_run_cov(mom_fn(b, x), m)
    AD = A @ D
    cov = inv_sym(AD.T @ inv_sym(A @ S @ A.T) @ AD) / T

    return dict(beta=b, std=std_from_cov(cov), cov=cov, D=D, S=S,
                gbar=gbar(b), A=A, nobs=T)


def j_test(g, nparams, m=0):
    """
    Hansen's J test of the over-identifying restrictions.

        J = T gbar' S^{-1} gbar  ~  chi2(M - K)

    Parameters
    ----------
    g : ndarray, shape (T, M)
        Moment conditions at the (efficient) estimate.
    nparams : int
        K, the number of estimated parameters.
    m : int
        Newey-West lags in S.

    Returns
    -------
    dict with keys stat, df, p_value.
    """
    g = np.asarray(g, dtype=float)
    T, M = g.shape
    df = M - nparams
    if df <= 0:
        raise ValueError("J test needs more moments than parameters")
    gbar = g.mean(axis=0)
    stat = T * gbar @ inv_sym(long_run_cov(g, m)) @ gbar
    return dict(stat=stat, df=df, p_value=stats.chi2.sf(stat, df))
