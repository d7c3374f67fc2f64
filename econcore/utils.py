"""
Shared utility functions used across all estimation modules.
"""

import numpy as np
from scipy import linalg

from .exceptions import SingularDesignError


def ols_fit(X, y):
    """
    OLS estimation via the normal equations.

    Parameters
    ----------
    X : ndarray, shape (T, k)
        Design matrix (should include a constant column if an intercept is desired).
    y : ndarray, shape (T,) or (T, n)
        Outcome vector, or one column per equation.

    Returns
    -------
    b : ndarray, shape (k,) or (k, n)
        Coefficient estimates, the solution of  X'X b = X'y.
    e : ndarray
        Residuals  y - X @ b.

    Raises
    ------
    SingularDesignError
        If X'X is singular (exact collinearity).
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    check_rank(X)
    b = solve_sym(X.T @ X, X.T @ y)
    e = y - X @ b
    return b, e


def check_rank(X):
    """Raise SingularDesignError if the columns of X are linearly dependent."""
    rank = np.linalg.matrix_rank(X)
    if rank < X.shape[1]:
        raise SingularDesignError(
            f"design matrix has rank {rank} < {X.shape[1]} columns (exact collinearity)")


def solve_sym(A, B):
    """
    Solve A x = B for symmetric positive definite A without forming inv(A).

    A is scaled to unit diagonal first, so regressors measured in very
    different units (X'X with cond(X)^2 beyond 1/eps) still solve
    accurately. Exact collinearity of a design is caught by `check_rank`.

    Raises SingularDesignError when A is singular or not positive definite.
    """
    A, d = _equilibrate(A)
    B = np.asarray(B, dtype=float)
    Bs = B * (d[:, None] if B.ndim == 2 else d)
    try:
        x = linalg.solve(A, Bs, assume_a="pos")
    except (linalg.LinAlgError, ValueError) as err:
        raise SingularDesignError(f"matrix is singular: {err}") from err
    return x * (d[:, None] if x.ndim == 2 else d)


def inv_sym(A):
    """
    Inverse of a symmetric matrix, symmetrized.

    Computed as D inv(D A D) D with D = diag(|a_ii|)^{-1/2}.

    Raises
    ------
    SingularDesignError
        If A is singular.
    """
    A, d = _equilibrate(A)
    try:
        Ai = linalg.inv(A)
    except linalg.LinAlgError as err:
        raise SingularDesignError(f"matrix is singular: {err}") from err
    return symmetrize(d[:, None] * Ai * d)


def _equilibrate(A):
    A = np.atleast_2d(np.asarray(A, dtype=float))
    if not np.all(np.isfinite(A)):
        raise SingularDesignError("matrix contains non-finite values")
    diag = np.abs(np.diag(A))
    if np.any(diag == 0):
        raise SingularDesignError("matrix has a zero row on the diagonal")
    d = 1 / np.sqrt(diag)
    return d[:, None] * A * d, d


def symmetrize(A):
    """Return (A + A') / 2."""
    return (A + A.T) / 2


def std_from_cov(V):
    """Standard errors, sqrt of the diagonal of a covariance matrix."""
    return np.sqrt(np.diag(V))


def add_const(x):
    """
    Prepend a column of ones (intercept) to the design matrix.

    Parameters
    ----------
    x : ndarray
        1-d array or 2-d matrix of regressors.

    Returns
    -------
    X : ndarray, shape (T, k+1)
        Design matrix with leading ones column.
    """
    x = np.asarray(x, dtype=float)
    x = np.atleast_2d(x).T if x.ndim == 1 else x
    return np.column_stack([np.ones(x.shape[0]), x])


def is_constant(x):
    """Boolean per column: True where the column has no variation."""
    x = np.asarray(x, dtype=float)
    x = x[:, None] if x.ndim == 1 else x
    return np.ptp(x, axis=0) == 0


def r_squared(u, y):
    """
    R2 = 1 - Var(u)/Var(y), column by column.

    Population variances (denominator T), consistent with the ML
    definition used elsewhere in the package.
    """
    return 1 - np.var(u, axis=0) / np.var(y, axis=0)
