import warnings

import numpy as np
import pytest
from sklearn.linear_model import Lasso

from fusenet.exceptions import NonConvergenceWarning
from fusenet.fusion import lambda_max
from fusenet.problem import make_problem
from fusenet.solvers.closed_form import solve_fused_l2
from fusenet.solvers.proximal import solve_fused_l1, solve_problem_l1

from conftest import make_grouped_gaussian, group_rows


def sparse_betas(rng, p, k):
    betas = np.zeros((p, k))
    betas[:p // 4] = 1.0
    betas[p // 2: 3 * p // 4] = -0.8
    return betas + 0.2 * rng.standard_normal((p, k)) * (betas != 0)


def test_zero_fusion_matches_independent_lasso(rng):
    p, k = 20, 4
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(25,) * k, p=p, betas=sparse_betas(rng, p, k))
    lam = 0.1
    beta, report = solve_fused_l1(X, y, groups, G=np.ones((k, k)), lam=lam, gamma=0.0, scaling=True,
                                  tolerance=1e-10, max_iterations=100_000)
    assert report.converged
    for g in range(k):
        rows = group_rows(groups, g)
        lasso = Lasso(alpha=lam, fit_intercept=False, tol=1e-15, max_iter=1_000_000).fit(X[rows], y[rows])
        nz = lasso.coef_ != 0
        assert np.max(np.abs(beta.column(g)[nz] - lasso.coef_[nz])) < 1e-6

        # KKT conditions of the per-group lasso
        grad = X[rows].T @ (y[rows] - X[rows] @ beta.column(g)) / len(rows)
        active = beta.column(g) != 0
        assert np.allclose(grad[active], lam * np.sign(beta.column(g)[active]), atol=1e-6)
        assert np.all(np.abs(grad[~active]) <= lam + 1e-6)


@pytest.mark.parametrize("accelerate", [False, True])
@pytest.mark.parametrize("step_size", ["lipschitz", "backtracking"])
def test_objective_is_non_increasing(rng, accelerate, step_size):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(30, 20, 25), p=10)
    _, report = solve_fused_l1(X, y, groups, lam=0.2, gamma=0.5, scaling=True, tolerance=1e-9,
                               max_iterations=20_000, accelerate=accelerate, step_size=step_size)
    h = np.asarray(report.objective_history)
    assert len(h) == report.n_iterations + 1
    assert np.all(np.diff(h) <= 1e-12 * max(1.0, abs(h[0])))
    assert h[-1] < h[0]


def test_acceleration_and_step_rules_share_the_fixed_point(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(30, 20, 25), p=10)
    kwargs = dict(lam=0.1, gamma=0.5, scaling=True, tolerance=1e-11, max_iterations=200_000)
    plain, r1 = solve_fused_l1(X, y, groups, accelerate=False, **kwargs)
    fast, r2 = solve_fused_l1(X, y, groups, accelerate=True, **kwargs)
    back, r3 = solve_fused_l1(X, y, groups, accelerate=True, step_size="backtracking", **kwargs)
    assert r1.converged and r2.converged and r3.converged
    assert np.allclose(plain.coef, fast.coef, atol=1e-6)
    assert np.allclose(plain.coef, back.coef, atol=1e-6)


def test_zero_lambda_matches_closed_form(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(25, 30, 35), p=6)
    exact = solve_fused_l2(X, y, groups, gamma=2.0, scaling=True, intercept=True)
    iterative, report = solve_fused_l1(X, y, groups, lam=0.0, gamma=2.0, scaling=True, intercept=True,
                                       tolerance=1e-11, max_iterations=100_000)
    assert report.converged
    assert np.allclose(iterative.coef, exact.coef, atol=1e-7)
    assert np.allclose(iterative.intercept, exact.intercept, atol=1e-7)


def test_solver_is_deterministic(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(15, 15, 15), p=8)
    a, _ = solve_fused_l1(X, y, groups, lam=0.05, gamma=1.0, tolerance=1e-8)
    b, _ = solve_fused_l1(X, y, groups, lam=0.05, gamma=1.0, tolerance=1e-8)
    assert np.array_equal(a.coef, b.coef)


def test_lambda_above_lambda_max_gives_zero(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(20, 20, 20), p=6)
    problem = make_problem(X, y, groups, scaling=True, gamma=1.0)
    lmax = lambda_max(problem)
    zero, report = solve_fused_l1(X, y, groups, lam=1.01 * lmax, gamma=1.0, scaling=True)
    assert report.converged
    assert np.all(zero.coef == 0)
    some, _ = solve_fused_l1(X, y, groups, lam=0.5 * lmax, gamma=1.0, scaling=True, max_iterations=10_000)
    assert np.any(some.coef != 0)


def test_penalty_factors_leave_features_unpenalized(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(20, 20), p=5)
    beta, _ = solve_fused_l1(X, y, groups, lam=100.0, gamma=0.1, scaling=True,
                             penalty_factors=[0, 1, 1, 1, 1], max_iterations=10_000)
    assert np.all(beta.coef[0] != 0)
    assert np.all(beta.coef[1:] == 0)


def test_max_iterations_warns_and_returns_best_so_far(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(20, 20), p=5)
    with pytest.warns(NonConvergenceWarning):
        beta, report = solve_fused_l1(X, y, groups, lam=0.01, gamma=1.0, tolerance=1e-14, max_iterations=3)
    assert not report.converged and not report.cancelled
    assert report.n_iterations == 3
    assert beta.shape == (5, 2)
    assert report.objective_history[-1] == min(report.objective_history)


def test_callback_cancels_at_iteration_boundary(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(20, 20), p=5)
    seen = []

    def stop_after_four(state):
        seen.append(state.iteration)
        return state.iteration >= 4

    problem = make_problem(X, y, groups, lam=0.01, gamma=1.0, tolerance=1e-14)
    with warnings.catch_warnings():
        warnings.simplefilter("error", NonConvergenceWarning)
        beta, report = solve_problem_l1(problem, callback=stop_after_four)
    assert report.cancelled and not report.converged
    assert report.n_iterations == 4
    assert seen == [1, 2, 3, 4]


def test_uneven_groups_with_and_without_scaling(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(40, 30, 20, 10), p=6)
    for scaling in (False, True):
        beta, report = solve_fused_l1(X, y, groups, lam=0.05, gamma=1.0, scaling=scaling,
                                      intercept=True, max_iterations=20_000)
        assert report.converged
        assert np.all(np.isfinite(beta.coef)) and np.all(np.isfinite(beta.intercept))


def test_scaling_reduces_largest_group_influence(rng):
    # balanced designs with X_g^T X_g = n_g/2 I, so the fused limit is a weighted mean
    sizes = (40, 30, 20, 10)
    X = np.vstack([np.tile(np.eye(2), (n // 2, 1)) for n in sizes])
    groups = np.repeat(np.arange(4), sizes)
    betas = np.array([[3.0, 0.0, 0.0, 0.0], [0.0, 3.0, 3.0, 3.0]])
    y = np.einsum("ij,ji->i", X, betas[:, groups]) + 0.01 * rng.standard_normal(len(groups))

    shared = {}
    for scaling in (False, True):
        beta, report = solve_fused_l1(X, y, groups, lam=0.01, gamma=1e3, scaling=scaling,
                                      tolerance=1e-9, max_iterations=200_000)
        assert report.converged
        shared[scaling] = np.asarray(beta).mean(axis=1)
    assert np.allclose(shared[False], [1.2, 1.8], atol=0.1)
    assert np.allclose(shared[True], [0.75, 2.25], atol=0.1)
    assert np.linalg.norm(shared[True] - betas[:, 0]) > np.linalg.norm(shared[False] - betas[:, 0])
