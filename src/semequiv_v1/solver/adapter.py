from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import z3

from ..schemas import UnknownReason
from ..symbolic.expr import int_range
from .budget import CancellationToken, RunBudget
from .encode import Encoder, EncodingError
from .query import Query, SolverOutcome

TIMEOUT_REASONS = {"timeout", "canceled"}


class Z3SolverAdapter:
    def __init__(self, bits: int = 64, minimize: bool = True) -> None:
        self.bits = bits
        self.minimize = minimize
        self.min_int, self.max_int = int_range(bits)

    def solve(
        self,
        query: Query,
        budget: RunBudget,
        token: Optional[CancellationToken] = None,
    ) -> SolverOutcome:
        token = token or CancellationToken()
        if token.is_cancelled():
            return SolverOutcome.unknown(token.reason or "Timeout")
        if budget.expired():
            return SolverOutcome.unknown("Timeout")
        ctx = z3.Context()
        token.register(ctx.interrupt)
        try:
            return self._solve(ctx, query, budget, token)
        except z3.Z3Exception:
            return SolverOutcome.unknown(token.reason or "SolverLimitation")
        finally:
            token.unregister(ctx.interrupt)

    def _solve(
        self, ctx: z3.Context, query: Query, budget: RunBudget, token: CancellationToken
    ) -> SolverOutcome:
        encoder = Encoder(ctx, self.bits)
        try:
            formula = encoder.holds(query.formula)
        except EncodingError:
            return SolverOutcome.unknown("SolverLimitation")

        declared = list(query.bound_names())
        for name in query.symbols:
            encoder.symbol(name)
        environment = sorted(name for name in encoder.symbols if name not in declared)
        lows: Dict[str, int] = {}
        solver = z3.Solver(ctx=ctx)
        for bound in query.bounds:
            symbol = encoder.symbol(bound.name)
            solver.add(encoder.in_range(symbol, bound.min, bound.max))
            lows[bound.name] = bound.min
        for name in environment:
            solver.add(encoder.full_range(encoder.symbol(name)))
            lows[name] = self.min_int
        solver.add(formula)

        result, reason = self._check(solver, budget, token)
        if reason is not None:
            return SolverOutcome.unknown(reason)
        if result == z3.unsat:
            return SolverOutcome.unsatisfiable()

        order = declared + environment
        model = self._read(solver.model(), encoder, order)
        if query.minimize and self.minimize:
            model = self._minimize(solver, encoder, order, lows, model, budget, token)
        return SolverOutcome.satisfiable(model)

    def _check(
        self, solver: z3.Solver, budget: RunBudget, token: CancellationToken
    ) -> Tuple[Optional[z3.CheckSatResult], Optional[UnknownReason]]:
        if token.is_cancelled():
            return None, token.reason
        remaining = budget.remaining_ms()
        if remaining <= 0:
            return None, "Timeout"
        solver.set("timeout", remaining)
        result = solver.check()
        if result == z3.sat or result == z3.unsat:
            return result, None
        if token.is_cancelled():
            return None, token.reason
        if budget.expired() or solver.reason_unknown() in TIMEOUT_REASONS:
            return None, "Timeout"
        return None, "SolverLimitation"

    @staticmethod
    def _read(model: z3.ModelRef, encoder: Encoder, names: Sequence[str]) -> Dict[str, int]:
        return {
            name: model.eval(encoder.symbol(name), model_completion=True).as_long()
            for name in names
        }

    def _minimize(
        self,
        solver: z3.Solver,
        encoder: Encoder,
        order: List[str],
        lows: Dict[str, int],
        model: Dict[str, int],
        budget: RunBudget,
        token: CancellationToken,
    ) -> Dict[str, int]:
        best = dict(model)
        for name in order:
            symbol = encoder.symbol(name)
            low, high = lows[name], best[name]
            while low < high:
                mid = (low + high) // 2
                solver.push()
                solver.add(symbol <= mid)
                result, reason = self._check(solver, budget, token)
                if result == z3.sat:
                    best = self._read(solver.model(), encoder, order)
                    high = best[name]
                solver.pop()
                if reason is not None:
                    return best
                if result == z3.unsat:
                    low = mid + 1
            solver.add(symbol == high)
        return best
