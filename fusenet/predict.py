import numpy as np

from .exceptions import ValidationError
from .problem import CoefficientMatrix, GroupIndex


def predict(beta, X_new, groups_new, groups_train=None):
    """
    Predict responses for new rows with the coefficients of their group.

    ``beta`` is a CoefficientMatrix, or a raw (p, k) array whose columns follow
    ``numpy.unique(groups_train)``; ``groups_train`` (the training assignment or
    its labels) is required in the raw case and, when given with a
    CoefficientMatrix, re-labels its columns the same way.

    Returns an array of length m = X_new.shape[0]. Raises UnknownGroupError
    (a LookupError) for labels without a fitted column.
    """
    if isinstance(beta, CoefficientMatrix):
        coef, intercept = beta.coef, beta.intercept
        labels = beta.labels
    else:
        if groups_train is None:
            raise ValidationError("groups_train is required when beta is a plain array")
        coef = np.asarray(beta, dtype=float)
        if coef.ndim != 2:
            raise ValidationError(f"beta must be a (p, k) matrix, got shape {coef.shape}")
        intercept = np.zeros(coef.shape[1])
        labels = None
    if groups_train is not None:
        labels = GroupIndex(groups_train).labels.tolist()
        if len(labels) != coef.shape[1]:
            raise ValidationError(
                f"beta has {coef.shape[1]} columns but groups_train has {len(labels)} groups"
            )
    trained = CoefficientMatrix(coef=coef, intercept=intercept, labels=tuple(labels))

    X_new = np.asarray(X_new, dtype=float)
    if X_new.ndim != 2 or X_new.shape[1] != coef.shape[0]:
        raise ValidationError(f"X_new must have shape (m, {coef.shape[0]}), got {X_new.shape}")
    new = GroupIndex(groups_new)
    if new.codes.shape[0] != X_new.shape[0]:
        raise ValidationError(
            f"groups_new has {new.codes.shape[0]} labels but X_new has {X_new.shape[0]} rows"
        )

    out = np.empty(X_new.shape[0])
    for label, rows in zip(new.labels.tolist(), new.rows):
        g = trained.index_of(label)
        out[rows] = X_new[rows] @ trained.coef[:, g] + trained.intercept[g]
    return out
