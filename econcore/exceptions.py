"""
Exception classes shared by the estimators.
"""

import numpy as np


class EconcoreError(Exception):
    """Base class for all econcore errors."""
    pass


class SingularDesignError(EconcoreError, np.linalg.LinAlgError):
    """
    A matrix that must be inverted is singular.

    Raised for an exactly collinear design (X'X not invertible) and for
    singular information, covariance or weighting matrices. The estimators
    never regularize; use `diagnostics.vif` to find the offending columns.
    """
    pass


class ConvergenceError(EconcoreError, RuntimeError):
    """
    An optimizer, root finder or GMM iteration did not converge.

    Attributes
    ----------
    x : ndarray or None
        Last iterate, available for inspection.
    message : str
        Reason reported by the solver.
    """

    def __init__(self, message, x=None):
        super().__init__(message)
        self.message = message
        self.x = x
