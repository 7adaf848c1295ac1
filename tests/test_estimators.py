import numpy as np
import pytest

from fusenet.estimators import FusedRegressor
from fusenet.solvers.proximal import ConvergenceReport

from conftest import make_grouped_gaussian


def test_estimator_closed_form_fit_predict_score(rng):
    X, y, groups, B = make_grouped_gaussian(rng, sizes=(40, 40, 40), p=5)
    est = FusedRegressor(lam=0.0, gamma=0.1).fit(X, y, groups)
    assert est.report_ is None
    assert est.coef_.shape == (5, 3) and est.intercept_.shape == (3,)
    yhat = est.predict(X, groups)
    assert yhat.shape == y.shape
    assert est.score(X, y, groups) > -0.05
    assert est.l2_risk(B) < 0.5


def test_estimator_picks_proximal_solver_for_sparsity(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(30, 30), p=6)
    est = FusedRegressor(lam=0.05, gamma=1.0, max_it=20_000).fit(X, y, groups)
    assert isinstance(est.report_, ConvergenceReport)
    assert est.report_.converged
    assert np.isfinite(est.score(X, y, groups))


def test_estimator_params_round_trip():
    est = FusedRegressor(lam=0.3, gamma=2.0, solver="proximal")
    params = est.get_params()
    assert params["lam"] == 0.3 and params["gamma"] == 2.0 and params["solver"] == "proximal"
    est.set_params(gamma=5.0)
    assert est.gamma == 5.0


def test_unknown_solver(rng):
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(10, 10), p=3)
    with pytest.raises(ValueError, match="Solver"):
        FusedRegressor(solver="newton").fit(X, y, groups)


def test_cvxpy_solver_agrees_with_specialised_solvers(rng):
    pytest.importorskip("cvxpy")
    X, y, groups, _ = make_grouped_gaussian(rng, sizes=(30, 25, 20), p=5)
    for lam in (0.0, 0.05):
        ref = FusedRegressor(lam=lam, gamma=0.5, solver="cvxpy").fit(X, y, groups)
        fast = FusedRegressor(lam=lam, gamma=0.5, tol=1e-10, max_it=100_000).fit(X, y, groups)
        assert np.allclose(ref.coef_, fast.coef_, atol=1e-3)
        assert np.allclose(ref.intercept_, fast.intercept_, atol=1e-3)
