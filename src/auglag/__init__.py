from .auglag import Problem, Result, Solution, solve
from .feasibility import accepts, evaluate_feasibility, infeasibility_measure, squared_infeasibility
from .functions import Constraint, Evaluable, Function
from .inner_solvers.inner_solvers import ScipySubSolver, SubSolver
from .merit import MeritFunction
from .state import IterateRecord, LagrangianState
from .status import Converged, Failed, Iterating, Status
from .stopping import StoppingBudget

__all__ = [
    "Constraint",
    "Converged",
    "Evaluable",
    "Failed",
    "Function",
    "IterateRecord",
    "Iterating",
    "LagrangianState",
    "MeritFunction",
    "Problem",
    "Result",
    "ScipySubSolver",
    "Solution",
    "Status",
    "StoppingBudget",
    "SubSolver",
    "accepts",
    "evaluate_feasibility",
    "infeasibility_measure",
    "solve",
    "squared_infeasibility",
]
