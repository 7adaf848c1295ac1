import numpy as np
from sklearn.base import BaseEstimator
from sklearn.metrics import mean_squared_error
from sklearn.utils.validation import check_is_fitted

from .problem import CoefficientMatrix, make_problem
from .predict import predict as _predict
from .solvers.closed_form import solve_problem_l2
from .solvers.proximal import solve_problem_l1


class FusedRegressor(BaseEstimator):
    """
    Grouped linear regression with L1 sparsity and L2 fusion penalties.

    Fits one coefficient column per group; ``G`` (k × k array or networkx graph
    over the group labels, default all-ones) sets how strongly each pair of
    groups is pulled together. Solver choice: 'closed_form' (lam must be 0),
    'proximal', or 'cvxpy' (reference formulation). None picks 'closed_form'
    when lam == 0 and 'proximal' otherwise.
    """
    def __init__(self, lam=0.0, gamma=1.0, G=None, intercept=True, scaling=True, solver=None,
                 tol=1e-6, max_it=1000, accelerate=True, step_size="lipschitz", penalty_factors=None):
        self.lam = lam
        self.gamma = gamma
        self.G = G
        self.intercept = intercept
        self.scaling = scaling
        self.solver = solver
        self.tol = tol
        self.max_it = max_it
        self.accelerate = accelerate
        self.step_size = step_size
        self.penalty_factors = penalty_factors

    def _resolve_solver(self):
        if self.solver is None:
            return "closed_form" if self.lam == 0 else "proximal"
        return self.solver

    def fit(self, X, y, groups, callback=None):
        """Fit the model on (X, y) with one group label per row."""
        problem = make_problem(
            X, y, groups, self.G,
            lam=self.lam, gamma=self.gamma, intercept=self.intercept, scaling=self.scaling,
            tolerance=self.tol, max_iterations=self.max_it, accelerate=self.accelerate,
            step_size=self.step_size, penalty_factors=self.penalty_factors,
        )
        solver = self._resolve_solver()
        report = None
        if solver == "closed_form":
            beta = solve_problem_l2(problem)
        elif solver == "proximal":
            beta, report = solve_problem_l1(problem, callback=callback)
        elif solver == "cvxpy":
            # imported lazily so cvxpy is only needed for the reference path
            from .solvers.cvxpy_solver import solve_problem_cvxpy
            beta = solve_problem_cvxpy(problem)
        else:
            raise ValueError(f"Solver not implemented: {self.solver!r}")

        self.beta_ = beta
        self.coef_ = np.asarray(beta.coef)
        self.intercept_ = np.asarray(beta.intercept)
        self.labels_ = np.asarray(beta.labels)
        self.report_ = report
        return self

    def predict(self, X, groups):
        """Predict each row with the coefficients of its group."""
        check_is_fitted(self, "beta_")
        return _predict(self.beta_, X, groups)

    def score(self, X, y, groups):
        """Negative MSE (compatible with sklearn 'neg_mean_squared_error')."""
        return -float(mean_squared_error(y, self.predict(X, groups)))

    def l2_risk(self, beta_star):
        """Frobenius distance between the fitted and the true (p, k) coefficients."""
        check_is_fitted(self, "beta_")
        beta_star = np.asarray(beta_star.coef if isinstance(beta_star, CoefficientMatrix) else beta_star)
        return float(np.linalg.norm(self.coef_ - beta_star))
