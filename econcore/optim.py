"""
Thin wrappers around scipy.optimize: minimization, root finding and
finite-difference derivatives.

The estimators only talk to scipy through these functions, so a failed
search always surfaces as a ConvergenceError instead of a silently wrong
estimate.
"""

import logging

import numpy as np
from scipy.optimize import Bounds, approx_fprime, minimize, root

from .exceptions import ConvergenceError
from .utils import symmetrize

logger = logging.getLogger(__name__)

FD_EPS = 1e-4
"""Relative step of the central differences in `numerical_hessian`."""

GTOL = 1e-5
"""Gradient tolerance of BFGS / L-BFGS-B (scipy's default)."""

ROOT_TOL = 1e-8
"""Largest accepted |fn(x)| at a root, relative to max(1, |fn(start)|)."""

# scipy status of BFGS / L-BFGS-B when the line search stalls
_LINE_SEARCH_STALLED = 2


def minimize_fn(fn, start, lower=None, upper=None, method=None, options=None, jac=None):
    """
    Minimize a scalar function, optionally within box bounds.

    A stalled line search (status 2, "precision loss") is accepted when the
    gradient at the last iterate is already below the gradient tolerance
    scaled by max(1, |f|): the iterate sits on the minimum and the
    function values no longer resolve a descent step.

    Parameters
    ----------
    fn : callable
        f(params) -> float.
    start : array_like
        Starting values.
    lower, upper : array_like or None
        Box bounds (use -inf/inf for unbounded elements).
    method : str or None
        scipy method. Defaults to BFGS, or L-BFGS-B when bounds are given.
    options : dict or None
        Passed on to scipy.optimize.minimize.
    jac : callable or None
        Gradient of fn; finite differences when None.

    Returns
    -------
    OptimizeResult

    Raises
    ------
    ConvergenceError
        If the optimizer fails; the last iterate is in `.x`.
    """
    start = np.asarray(start, dtype=float)
    bounds = None
    if lower is not None or upper is not None:
        lo = np.full(start.shape, -np.inf) if lower is None else np.asarray(lower, dtype=float)
        hi = np.full(start.shape, np.inf) if upper is None else np.asarray(upper, dtype=float)
        bounds = Bounds(lo, hi)
        method = method or "L-BFGS-B"
    else:
        method = method or "BFGS"

    res = minimize(fn, start, method=method, jac=jac, bounds=bounds, options=options)
    logger.debug("%s: success=%s status=%s nit=%s fun=%s",
                 method, res.success, res.status, res.get("nit"), res.fun)
    if res.success:
        return res

    gtol = (options or {}).get("gtol", GTOL)
    grad = res.get("jac")
    if (res.status == _LINE_SEARCH_STALLED and grad is not None
            and np.linalg.norm(grad, np.inf) <= gtol * max(1.0, abs(res.fun))):
        logger.debug("%s: accepting stalled line search, |grad| = %.3g",
                     method, np.linalg.norm(grad, np.inf))
        return res
    raise ConvergenceError(f"{method} did not converge: {res.message}", x=res.x)


def root_fn(fn, start, method="hybr", options=None, tol=ROOT_TOL):
    """
    Solve fn(params) = 0 for a square system.

    Convergence is judged on the residual: the solution is accepted when
    max |fn(x)| <= tol * max(1, max |fn(start)|), whatever status the
    solver reports (MINPACK flags "no progress" when it starts on, or
    lands exactly on, the root).

    Raises
    ------
    ConvergenceError
        If the residual at the last iterate is above the tolerance.
    """
    start = np.asarray(start, dtype=float)
    scale = max(1.0, np.max(np.abs(fn(start))))
    res = root(fn, start, method=method, options=options)
    resid = np.max(np.abs(fn(res.x)))
    logger.debug("root %s: success=%s nfev=%s max|f|=%.3g",
                 method, res.success, res.get("nfev"), resid)
    if not resid <= tol * scale:
        raise ConvergenceError(
            f"root finding did not converge (max |f| = {resid:.3g}): {res.message}", x=res.x)
    return res


def numerical_jacobian(fn, b, eps=None):
    """
    Forward-difference Jacobian.

    Parameters
    ----------
    fn : callable
        f(b) -> scalar or ndarray of shape (m,).
    b : ndarray, shape (k,)
    eps : float or None
        Step, defaults to sqrt(machine epsilon).

    Returns
    -------
    J : ndarray, shape (k,) for scalar f, else (m, k)
    """
    if eps is None:
        eps = np.sqrt(np.finfo(float).eps)
    return approx_fprime(np.asarray(b, dtype=float), fn, eps)


def numerical_hessian(fn, b, eps=FD_EPS):
    """
    Central-difference Hessian of a scalar function at b, symmetrized.

    H_ij = [f(b + h_i + h_j) - f(b + h_i - h_j)
            - f(b - h_i + h_j) + f(b - h_i - h_j)] / (4 h_i h_j)

    with steps h_i = eps * max(|b_i|, 1).

    Returns
    -------
    H : ndarray, shape (k, k)
    """
    b = np.asarray(b, dtype=float)
    k = len(b)
    h = eps * np.maximum(np.abs(b), 1.0)
    steps = np.diag(h)
    H = np.empty((k, k))
    for i in range(k):
        for j in range(i, k):
            di, dj = steps[i], steps[j]
            H[i, j] = (fn(b + di + dj) - fn(b + di - dj)
                       - fn(b - di + dj) + fn(b - di - dj)) / (4 * h[i] * h[j])
            H[j, i] = H[i, j]
    return symmetrize(H)
