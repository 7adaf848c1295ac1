from .closed_form import solve_fused_l2, solve_problem_l2, assemble_system
from .proximal import solve_fused_l1, solve_problem_l1, ConvergenceReport, ConvergenceState
__all__ = ['solve_fused_l2', 'solve_problem_l2', 'assemble_system',
           'solve_fused_l1', 'solve_problem_l1', 'ConvergenceReport', 'ConvergenceState']
