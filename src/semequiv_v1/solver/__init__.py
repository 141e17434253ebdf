from .adapter import Z3SolverAdapter
from .budget import CancellationToken, RunBudget
from .query import Query, SolverOutcome

__all__ = ["CancellationToken", "Query", "RunBudget", "SolverOutcome", "Z3SolverAdapter"]
