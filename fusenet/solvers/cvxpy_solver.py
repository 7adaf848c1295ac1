import logging
import warnings

import numpy as np
import cvxpy as cp

from ..exceptions import NonConvergenceWarning
from ..fusion import build_fusion_structure
from ..losses import grouped_l2_loss
from ..penalties import fused_penalty, weighted_incidence
from ..problem import CoefficientMatrix, make_problem

logger = logging.getLogger(__name__)


def solve_problem_cvxpy(problem, solver=None, **solver_kwargs):
    """
    Solve the fused objective as a generic cvxpy problem (reference formulation).

    Solver failures surface as ``cvxpy.SolverError``, both when ``solve`` raises
    it and when it returns without a solution.
    """
    cfg = problem.config
    structure = build_fusion_structure(problem)
    p, k = structure.n_features, structure.n_groups

    beta = cp.Variable((p, k))
    D = weighted_incidence(np.asarray(problem.weights))
    obj = grouped_l2_loss(structure.blocks, structure.weights, beta) \
        + fused_penalty(beta, cfg.lam, cfg.gamma, D, np.asarray(problem.penalty_factors))
    prob = cp.Problem(cp.Minimize(obj))
    prob.solve(solver=solver, **solver_kwargs)

    if beta.value is None:
        raise cp.SolverError(f"cvxpy returned no solution (status: {prob.status})")
    if prob.status != cp.OPTIMAL:
        warnings.warn(f"cvxpy finished with status {prob.status!r}; solution may be inaccurate",
                      NonConvergenceWarning, stacklevel=2)
    logger.debug("cvxpy solve: status=%s value=%g", prob.status, prob.value)

    B = np.asarray(beta.value, dtype=float).reshape(p, k)
    return CoefficientMatrix(
        coef=B,
        intercept=structure.intercepts(B),
        labels=tuple(problem.groups.labels.tolist()),
    )


def solve_fused_cvxpy(X, y, groups, G=None, lam=0.0, gamma=1.0, intercept=False, scaling=False,
                      penalty_factors=None, solver=None):
    problem = make_problem(X, y, groups, G, lam=lam, gamma=gamma, intercept=intercept,
                           scaling=scaling, penalty_factors=penalty_factors)
    return solve_problem_cvxpy(problem, solver=solver)
