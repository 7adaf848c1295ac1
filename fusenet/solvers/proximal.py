import logging
import warnings
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
from numpy.linalg import norm

from ..exceptions import NonConvergenceWarning
from ..fusion import build_fusion_structure
from ..problem import CoefficientMatrix, make_problem

logger = logging.getLogger(__name__)

# backtracking starts this many times above 1/L and halves down to it
_BACKTRACK_GROWTH = 8.0


@dataclass
class ConvergenceState:
    iteration: int
    objective: float
    update_norm: float
    step_size: float


@dataclass(frozen=True)
class ConvergenceReport:
    converged: bool
    n_iterations: int
    update_norm: float
    objective_history: Tuple[float, ...]
    step_size: float
    cancelled: bool = False


def _soft(x, kappa):
    # elementwise soft-threshold
    return np.sign(x) * np.maximum(np.abs(x) - kappa, 0.0)


def _prox_grad(structure, point, grad, t):
    return _soft(point - t * grad, t * structure.l1_weights)


def _backtrack(structure, point, grad, t):
    """
    Shrink t until the quadratic upper bound holds at the prox-gradient point:
      f(z) <= f(x) + <grad, z - x> + ||z - x||^2 / (2t)
    The bound always holds for t <= 1/L, so the search stops there.
    """
    t_min = 1.0 / structure.lipschitz
    f_point = structure.smooth_objective(point)
    while True:
        z = _prox_grad(structure, point, grad, t)
        d = z - point
        bound = f_point + np.sum(grad * d) + np.sum(d * d) / (2.0 * t)
        if t <= t_min or structure.smooth_objective(z) <= bound:
            return z, t
        t = max(0.5 * t, t_min)


def solve_problem_l1(problem, callback: Optional[Callable[[ConvergenceState], bool]] = None):
    """
    Proximal gradient descent on
      sum_g w_g/2 ||y_g - X_g b_g||^2 + gamma/2 tr(B L B^T) + lam sum_{j,g} pf_j |B_jg|
    starting from B = 0.

    With ``accelerate`` the monotone FISTA variant is used: the extrapolated
    prox-gradient point is only accepted when it does not increase the
    objective, so the objective sequence is non-increasing either way and
    both variants share the same fixed point.

    Stops when ||z - y||_F < tolerance, where z is the prox-gradient point
    taken from y, or after max_iterations. ``callback(state)`` runs once per
    iteration boundary; a truthy return cancels the solve.
    Returns (CoefficientMatrix, ConvergenceReport).
    """
    cfg = problem.config
    structure = build_fusion_structure(problem)
    p, k = structure.n_features, structure.n_groups

    backtracking = cfg.step_size == "backtracking"
    t = (_BACKTRACK_GROWTH if backtracking else 1.0) / structure.lipschitz

    beta = np.zeros((p, k))
    point = beta.copy()
    theta = 1.0
    obj = structure.objective(beta)
    history = [obj]
    converged = cancelled = False
    update = np.inf
    it = 0

    for it in range(1, int(cfg.max_iterations) + 1):
        grad = structure.smooth_gradient(point)
        if backtracking:
            z, t = _backtrack(structure, point, grad, t)
        else:
            z = _prox_grad(structure, point, grad, t)
        update = float(norm(z - point))
        obj_z = structure.objective(z)

        if cfg.accelerate:
            theta_next = 0.5 * (1.0 + np.sqrt(1.0 + 4.0 * theta * theta))
            if obj_z <= obj:
                beta_next, obj_next = z, obj_z
            else:
                beta_next, obj_next = beta, obj
            point = (beta_next
                     + (theta / theta_next) * (z - beta_next)
                     + ((theta - 1.0) / theta_next) * (beta_next - beta))
            theta = theta_next
        else:
            beta_next, obj_next = z, obj_z
            point = z

        beta, obj = beta_next, obj_next
        history.append(obj)

        if update < cfg.tolerance:
            converged = True
            break
        if callback is not None and callback(ConvergenceState(it, obj, update, t)):
            cancelled = True
            break

    report = ConvergenceReport(
        converged=converged,
        n_iterations=it,
        update_norm=update,
        objective_history=tuple(history),
        step_size=t,
        cancelled=cancelled,
    )
    logger.debug(
        "proximal solve: p=%d k=%d lam=%g gamma=%g iterations=%d update=%.3e converged=%s",
        p, k, cfg.lam, cfg.gamma, it, update, converged,
    )
    if not converged and not cancelled:
        warnings.warn(
            f"proximal solver stopped after {it} iterations with update norm {update:.3e} "
            f"> tolerance {cfg.tolerance:g}; increase max_iterations or loosen tolerance",
            NonConvergenceWarning,
            stacklevel=2,
        )

    coef = CoefficientMatrix(
        coef=beta,
        intercept=structure.intercepts(beta),
        labels=tuple(problem.groups.labels.tolist()),
    )
    return coef, report


def solve_fused_l1(X, y, groups, G=None, lam=0.1, gamma=1.0, intercept=False, scaling=False,
                   tolerance=1e-6, max_iterations=1000, accelerate=True, step_size="lipschitz",
                   penalty_factors=None, callback=None):
    """
    Fit one coefficient vector per group under L1 sparsity + L2 fusion penalties.

    See :func:`solve_problem_l1` for the objective and stopping rule. Reaching
    ``max_iterations`` is not an error: the best coefficients so far are
    returned, ``report.converged`` is False and a NonConvergenceWarning is
    emitted.
    """
    problem = make_problem(
        X, y, groups, G,
        lam=lam, gamma=gamma, intercept=intercept, scaling=scaling,
        tolerance=tolerance, max_iterations=max_iterations, accelerate=accelerate,
        step_size=step_size, penalty_factors=penalty_factors,
    )
    return solve_problem_l1(problem, callback=callback)
