"""Validated problem handle for grouped regression with a fusion penalty.

Everything the solvers consume passes through :func:`make_problem` once:

- ``X`` (n × p) and ``y`` (n,) are checked, converted to float and frozen;
- the group assignment is indexed once (label -> row indices), the sorted
  distinct labels fixing the column order of the coefficient matrix;
- the fusion weights ``G`` are aligned with those labels, symmetrised and
  stripped of their diagonal;
- the hyperparameters are checked as a :class:`FusionConfig`.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import networkx as nx

from .exceptions import UnknownGroupError, ValidationError

STEP_SIZE_RULES = ("lipschitz", "backtracking")


@dataclass(frozen=True)
class FusionConfig:
    """Hyperparameters of one fit.

    lam:
        Strength of the L1 sparsity penalty (>= 0).
    gamma:
        Strength of the L2 fusion penalty (>= 0).
    intercept:
        Fit one unpenalized, unfused intercept per group.
    scaling:
        Divide each group's squared loss by its sample count so that groups of
        very different size weigh comparably in the joint objective.
    tolerance, max_iterations:
        Stopping rule of the proximal solver (ignored by the closed form).
    accelerate:
        Use the monotone accelerated proximal-gradient iteration.
    step_size:
        ``"lipschitz"`` (fixed 1/L) or ``"backtracking"``.
    penalty_factors:
        Optional per-feature multipliers of ``lam`` (0 leaves a feature
        unpenalized).
    """

    lam: float = 0.0
    gamma: float = 1.0
    intercept: bool = False
    scaling: bool = False
    tolerance: float = 1e-6
    max_iterations: int = 1000
    accelerate: bool = True
    step_size: str = "lipschitz"
    penalty_factors: Optional[Sequence[float]] = None


class GroupIndex:
    """Index of a group assignment: labels, per-row codes and per-group rows."""

    def __init__(self, groups):
        groups = np.asarray(groups)
        if groups.ndim != 1:
            raise ValidationError(f"group assignment must be 1-D, got shape {groups.shape}")
        try:
            labels, codes = np.unique(groups, return_inverse=True)
        except TypeError as exc:
            raise ValidationError(f"group labels must be mutually comparable: {exc}") from exc
        self.labels = labels
        self.codes = codes.reshape(-1)
        self.rows = tuple(np.flatnonzero(self.codes == g) for g in range(len(labels)))
        self.counts = np.array([len(r) for r in self.rows], dtype=int)
        self._lookup: Dict[Any, int] = {lab: g for g, lab in enumerate(labels.tolist())}

    def __len__(self) -> int:
        return len(self.labels)

    def column(self, label) -> int:
        """Column of the coefficient matrix fitted for ``label``."""
        try:
            return self._lookup[label]
        except (KeyError, TypeError):
            raise UnknownGroupError(f"no fitted coefficients for group {label!r}") from None


@dataclass(frozen=True, eq=False)
class FusedProblem:
    X: np.ndarray
    y: np.ndarray
    groups: GroupIndex
    weights: np.ndarray
    config: FusionConfig
    penalty_factors: np.ndarray

    @property
    def n_samples(self) -> int:
        return self.X.shape[0]

    @property
    def n_features(self) -> int:
        return self.X.shape[1]

    @property
    def n_groups(self) -> int:
        return len(self.groups)


@dataclass(frozen=True, eq=False)
class CoefficientMatrix:
    """Fitted coefficients, one column per training group.

    ``coef`` is p × k, ``intercept`` has length k (zeros when no intercept was
    fitted) and ``labels`` lists the training group of each column.
    """

    coef: np.ndarray
    intercept: np.ndarray
    labels: Tuple[Any, ...]
    _index: Dict[Any, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        coef = np.array(self.coef, dtype=float)
        intercept = np.array(self.intercept, dtype=float).reshape(-1)
        if coef.ndim != 2 or coef.shape[1] != len(self.labels) or intercept.shape != (coef.shape[1],):
            raise ValidationError(
                f"coefficient shape {coef.shape} and intercept shape {intercept.shape} "
                f"do not match {len(self.labels)} group labels"
            )
        coef.flags.writeable = False
        intercept.flags.writeable = False
        object.__setattr__(self, "coef", coef)
        object.__setattr__(self, "intercept", intercept)
        object.__setattr__(self, "labels", tuple(self.labels))
        object.__setattr__(self, "_index", {lab: g for g, lab in enumerate(self.labels)})

    def __array__(self, dtype=None, copy=None):
        a = np.asarray(self.coef, dtype=dtype)
        return a.copy() if copy else a

    @property
    def shape(self) -> Tuple[int, int]:
        return self.coef.shape

    def index_of(self, label) -> int:
        try:
            return self._index[label]
        except (KeyError, TypeError):
            raise UnknownGroupError(f"no fitted coefficients for group {label!r}") from None

    def column(self, label) -> np.ndarray:
        return self.coef[:, self.index_of(label)]


def _frozen(a: np.ndarray) -> np.ndarray:
    a = np.array(a, dtype=float)
    a.flags.writeable = False
    return a


def _check_data(X, y) -> Tuple[np.ndarray, np.ndarray]:
    try:
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"X and y must be real-valued arrays: {exc}") from exc
    if X.ndim != 2:
        raise ValidationError(f"X must be 2-D (observations x features), got shape {X.shape}")
    if y.ndim == 2 and y.shape[1] == 1:
        y = y[:, 0]
    if y.ndim != 1:
        raise ValidationError(f"y must be 1-D, got shape {y.shape}")
    if X.shape[0] != y.shape[0]:
        raise ValidationError(f"X has {X.shape[0]} rows but y has {y.shape[0]} values")
    if X.shape[0] == 0 or X.shape[1] == 0:
        raise ValidationError(f"X must have at least one row and one column, got shape {X.shape}")
    if not (np.all(np.isfinite(X)) and np.all(np.isfinite(y))):
        raise ValidationError("X and y must be finite (no NaN or inf)")
    return X, y


def fusion_weights(G, labels: np.ndarray) -> np.ndarray:
    """Align ``G`` with ``labels`` and return a symmetric k × k weight matrix.

    ``G`` may be None (uniform coupling), a k × k array ordered like
    ``labels``, or a networkx graph whose nodes are the group labels.
    """
    k = len(labels)
    if G is None:
        W = np.ones((k, k))
    elif isinstance(G, nx.Graph):
        missing = [lab for lab in labels.tolist() if lab not in G]
        if missing:
            raise ValidationError(f"fusion graph has no node for groups {missing}")
        W = nx.to_numpy_array(G, nodelist=labels.tolist(), weight="weight", dtype=float)
    else:
        try:
            W = np.asarray(G, dtype=float)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"fusion matrix must be real-valued: {exc}") from exc
        if W.ndim != 2 or W.shape[0] != W.shape[1]:
            raise ValidationError(f"fusion matrix must be square, got shape {W.shape}")
        if W.shape[0] != k:
            raise ValidationError(
                f"fusion matrix is {W.shape[0]}x{W.shape[1]} but the assignment has {k} groups"
            )
    if not np.all(np.isfinite(W)):
        raise ValidationError("fusion matrix must be finite")
    if np.any(W < 0):
        raise ValidationError("fusion matrix must be non-negative")
    W = 0.5 * (W + W.T)
    np.fill_diagonal(W, 0.0)
    return W


def _check_config(config: FusionConfig, p: int) -> np.ndarray:
    for name in ("intercept", "scaling", "accelerate"):
        value = getattr(config, name)
        if not isinstance(value, (bool, np.bool_)):
            raise ValidationError(f"{name} must be a boolean flag, got {value!r}")
    for name in ("lam", "gamma"):
        value = getattr(config, name)
        if not isinstance(value, numbers.Real) or not np.isfinite(value) or value < 0:
            raise ValidationError(f"{name} must be a finite number >= 0, got {value!r}")
    tol = config.tolerance
    if not isinstance(tol, numbers.Real) or not np.isfinite(tol) or tol <= 0:
        raise ValidationError(f"tolerance must be > 0, got {tol!r}")
    it = config.max_iterations
    if isinstance(it, bool) or not isinstance(it, numbers.Integral) or it < 1:
        raise ValidationError(f"max_iterations must be an integer >= 1, got {it!r}")
    if config.step_size not in STEP_SIZE_RULES:
        raise ValidationError(f"step_size must be one of {STEP_SIZE_RULES}, got {config.step_size!r}")

    if config.penalty_factors is None:
        return np.ones(p)
    pf = np.asarray(config.penalty_factors, dtype=float).reshape(-1)
    if pf.shape != (p,):
        raise ValidationError(f"penalty_factors must have one entry per feature ({p}), got {pf.shape[0]}")
    if not np.all(np.isfinite(pf)) or np.any(pf < 0):
        raise ValidationError("penalty_factors must be finite and >= 0")
    return pf


def make_problem(X, y, groups, G=None, config: Optional[FusionConfig] = None, **overrides) -> FusedProblem:
    """Validate the inputs of one fit and return an immutable problem handle.

    Keyword ``overrides`` replace fields of ``config`` (or of the default
    :class:`FusionConfig`). Raises :class:`ValidationError` naming the first
    violated constraint.
    """
    try:
        config = replace(config or FusionConfig(), **overrides)
    except TypeError as exc:
        raise ValidationError(f"unknown hyperparameter in {sorted(overrides)}: {exc}") from exc
    X, y = _check_data(X, y)
    index = GroupIndex(groups)
    if index.codes.shape[0] != X.shape[0]:
        raise ValidationError(
            f"group assignment has {index.codes.shape[0]} labels but X has {X.shape[0]} rows"
        )
    W = fusion_weights(G, index.labels)
    pf = _check_config(config, X.shape[1])
    return FusedProblem(
        X=_frozen(X),
        y=_frozen(y),
        groups=index,
        weights=_frozen(W),
        config=config,
        penalty_factors=_frozen(pf),
    )
