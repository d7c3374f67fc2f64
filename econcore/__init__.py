"""
econcore -- from-scratch estimation core for econometrics.

Least squares with iid, White, Newey-West, Hodrick-Hansen, cluster and
panel (Driscoll-Kraay, Arellano) covariance estimators, fixed-effects
transforms for panels, and generic MLE and GMM engines, using only
numpy / scipy / pandas.
"""

import logging

from .utils import ols_fit, add_const
from .exceptions import EconcoreError, SingularDesignError, ConvergenceError
from . import covariance
from . import ols
from . import panel_fe
from . import optim
from . import mle
from . import gmm
from . import diagnostics
from . import moments

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
