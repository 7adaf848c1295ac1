# fusenet/__init__.py
from importlib import import_module as _imp

from .exceptions import ValidationError, LinearAlgebraError, UnknownGroupError, NonConvergenceWarning
from .problem import FusionConfig, CoefficientMatrix, make_problem
from .fusion import lambda_max
from .solvers import solve_fused_l2, solve_fused_l1, ConvergenceReport
from .predict import predict

__version__ = "0.1.0"

# Public API surface
__all__ = [
    # errors
    "ValidationError", "LinearAlgebraError", "UnknownGroupError", "NonConvergenceWarning",
    # problem and solvers
    "FusionConfig", "CoefficientMatrix", "make_problem", "lambda_max",
    "solve_fused_l2", "solve_fused_l1", "ConvergenceReport", "predict",
    # submodules (lazy)
    "penalties", "losses",
    # cvxpy reference solver (lazy)
    "solve_fused_cvxpy",
    # estimators (lazy)
    "FusedRegressor",
]

# Lazy attribute loader (Python 3.7+)
def __getattr__(name):
    # Lazy-load cvxpy-backed submodules
    if name in {"penalties", "losses"}:
        return _imp(f".{name}", __name__)
    if name == "solve_fused_cvxpy":
        mod = _imp(".solvers.cvxpy_solver", __name__)
        return getattr(mod, "solve_fused_cvxpy")
    # sklearn wrapper
    if name == "FusedRegressor":
        est = _imp(".estimators", __name__)
        return getattr(est, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

def __dir__():
    # So tab-complete shows public names
    return sorted(set(globals().keys()) | set(__all__))
