"""Exceptions and warnings raised by fusenet."""

from numpy.linalg import LinAlgError
from sklearn.exceptions import ConvergenceWarning


class ValidationError(ValueError):
    """Raised when the regression inputs or hyperparameters are inconsistent."""

    pass


class LinearAlgebraError(LinAlgError):
    """Raised when the closed-form system is singular or ill-conditioned."""

    pass


class UnknownGroupError(LookupError):
    """Raised when a prediction is requested for a group with no fitted column."""

    pass


class NonConvergenceWarning(ConvergenceWarning):
    """Emitted when the proximal solver stops at ``max_iterations``."""

    pass
