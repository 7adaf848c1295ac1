import logging
import warnings

import numpy as np
from scipy.linalg import LinAlgError, LinAlgWarning, solve

from ..exceptions import LinearAlgebraError, ValidationError
from ..fusion import build_fusion_structure
from ..problem import CoefficientMatrix, make_problem

logger = logging.getLogger(__name__)


def assemble_system(structure):
    """
    Build the (p*k) × (p*k) normal equations of the smooth objective:
      A = blockdiag_g(w_g X_g^T X_g) + gamma * (L ⊗ I_p),   b = [w_g X_g^T y_g]_g
    Unknowns are stacked group-major: index g*p + j holds feature j of group g.
    """
    p, k = structure.n_features, structure.n_groups
    A = np.kron(structure.coupling, np.eye(p))
    for g in range(k):
        A[g*p:(g+1)*p, g*p:(g+1)*p] += structure.gram[g]
    b = structure.moment.T.reshape(-1)
    return A, b


def solve_problem_l2(problem):
    """Closed-form minimiser of least squares + L2 fusion for a validated problem."""
    lam = problem.config.lam
    if lam != 0:
        raise ValidationError(f"the closed-form solver requires lam == 0, got {lam!r}; use solve_fused_l1")

    structure = build_fusion_structure(problem)
    A, b = assemble_system(structure)

    with warnings.catch_warnings():
        warnings.simplefilter("error", LinAlgWarning)
        try:
            sol = solve(A, b, assume_a="pos", check_finite=False)
        except (LinAlgError, LinAlgWarning) as exc:
            raise LinearAlgebraError(
                f"closed-form system of size {A.shape[0]} is singular or ill-conditioned "
                f"(gamma={structure.gamma}, group sizes={problem.groups.counts.tolist()}): {exc}"
            ) from exc

    B = sol.reshape(structure.n_groups, structure.n_features).T
    logger.debug("closed-form solve: p=%d k=%d gamma=%g", structure.n_features, structure.n_groups, structure.gamma)
    return CoefficientMatrix(
        coef=B,
        intercept=structure.intercepts(B),
        labels=tuple(problem.groups.labels.tolist()),
    )


def solve_fused_l2(X, y, groups, G=None, lam=0.0, gamma=1.0, intercept=False, scaling=False):
    """
    Fit one coefficient vector per group under an L2 fusion penalty:
      min_B  sum_g w_g/2 ||y_g - X_g b_g||^2 + gamma/2 sum_{i,j} G_ij/2 ||b_i - b_j||^2
    with w_g = 1/n_g if ``scaling`` else 1. ``lam`` is accepted for symmetry with
    :func:`solve_fused_l1` and must be zero.

    Returns a CoefficientMatrix (p × k, columns in sorted label order).
    Raises ValidationError on malformed inputs and LinearAlgebraError when
    the assembled system cannot be solved reliably.
    """
    problem = make_problem(X, y, groups, G, lam=lam, gamma=gamma, intercept=intercept, scaling=scaling)
    return solve_problem_l2(problem)
