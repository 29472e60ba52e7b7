import time

import numpy as np

from .feasibility import accepts, evaluate_feasibility, infeasibility_measure, squared_infeasibility
from .functions import Evaluable, Function, as_constraint
from .inner_solvers.inner_solvers import ScipySubSolver
from .merit import MeritFunction
from .state import IterateRecord, LagrangianState
from .status import ITERATING, Converged, Failed, Status, as_status, is_failure
from .stopping import StoppingBudget
from .utils.prox_utils import make_box, project


def _as_list(cons):
    if cons is None:
        return []
    if callable(cons) and not isinstance(cons, (list, tuple)):
        return [cons]
    # a single (callable, tol) pair
    if isinstance(cons, tuple) and len(cons) == 2 and callable(cons[0]) and not callable(cons[1]):
        return [cons]
    return list(cons)


class Problem:
    def __init__(self, f, h=None, g=None, f_grad=None, lb=None, ub=None, n=None, jittable=False, callback=None):
        if not (isinstance(f, Evaluable) or callable(f)):
            raise ValueError(f"Expected a callable or an Evaluable objective, got {type(f)}.")
        self.f = f if isinstance(f, Evaluable) else Function(f, grad=f_grad, jittable=jittable)
        self.h = tuple(as_constraint(c) for c in _as_list(h))
        self.g = tuple(as_constraint(c) for c in _as_list(g))
        self.lb = lb
        self.ub = ub
        self.n = n
        self.callback = callback

    @property
    def h_tols(self):
        return np.array([getattr(c, "tol", 0.0) for c in self.h])

    @property
    def g_tols(self):
        return np.array([getattr(c, "tol", 0.0) for c in self.g])

    def eval_constraints(self, x):
        h_x = np.array([c.evaluate(x, False)[0] for c in self.h], dtype=float)
        g_x = np.array([c.evaluate(x, False)[0] for c in self.g], dtype=float)
        return h_x, g_x


class Solution:
    def __init__(self, problem, x0, sub_solver=None, delegate_inequalities=False, budget=None, verbosity=1, maxeval=100000,
                 maxtime=0.0, ftol_rel=1e-10, ftol_abs=0.0, xtol_rel=1e-8, xtol_abs=0.0, minf_max=-np.inf):
        x0 = np.asarray(x0, dtype=float).reshape(-1)
        if problem.n is not None and problem.n != x0.shape[0]:
            raise ValueError(f"Initial point has dimension {x0.shape[0]}, expected {problem.n}.")
        self.problem = problem
        self.n = x0.shape[0]
        self.box = make_box(self.n, problem.lb, problem.ub)
        self.x0 = project(self.box, x0)
        self.sub_solver = sub_solver if sub_solver is not None else ScipySubSolver()
        self.sub_has_fc = bool(delegate_inequalities)
        if self.sub_has_fc and problem.g and not self.sub_solver.supports_inequality_constraints:
            raise ValueError(f"{type(self.sub_solver).__name__} cannot handle inequality constraints; set delegate_inequalities=False.")
        self.budget = budget if budget is not None else StoppingBudget(maxeval=maxeval, maxtime=maxtime, ftol_rel=ftol_rel, ftol_abs=ftol_abs,
                                                                      xtol_rel=xtol_rel, xtol_abs=xtol_abs, minf_max=minf_max)
        self.verbosity = verbosity

        # inequality constraints go either to the sub-solver or to the penalty, never both
        self.g_sub = problem.g if self.sub_has_fc else ()
        self.g_pen = () if self.sub_has_fc else problem.g

        self.x = self.x0.copy()
        self.f = np.inf
        self.infeas = np.inf
        self.feasible = False
        self.solve_status = None
        self.run_state = ITERATING
        self.rho = None
        self.lbda = None
        self.mu = None
        self.nit = 0
        self.icm = np.inf
        self.f_hist = []
        self.total_infeas = []
        self.icm_hist = []
        self.rho_hist = []
        self.lbda_hist = []
        self.mu_hist = []
        self.runtime = None

    def _penalized(self, g_x):
        return np.array([]) if self.sub_has_fc else g_x

    def auglag(self):
        start_time = time.time()
        problem = self.problem
        p, m = len(problem.h), len(self.g_pen)
        try:
            state = LagrangianState(self.n, p, m)
        except MemoryError:
            self.solve_status = Status.OUT_OF_MEMORY
            self.run_state = Failed(Status.OUT_OF_MEMORY)
            self.runtime = time.time() - start_time
            return

        with state:
            self.state = state
            self.record = IterateRecord()
            self.merit = MeritFunction(problem.f, problem.h, self.g_pen, state, self.budget)
            self.xcur = self.x0.copy()

            if p == 0 and m == 0:
                self._solve_unpenalized()
            else:
                self._initial_penalty()
                if self.verbosity > 0:
                    print(f"{'iter':<5} | {'f':<10} | {'total infeas':<12} | {'ICM':<10} | {'rho':<10}")
                    print("-" * 60)
                while not self.run_state.terminal:
                    self.run_state = self._step()
                self.solve_status = self.run_state.code
                self.x = self.record.x.copy()
                self.f = self.record.f
                self.infeas = self.record.infeas
                self.feasible = self.record.feasible
            self.rho = state.rho
            self.lbda = state.lbda.copy()
            self.mu = state.mu.copy()

        self.runtime = time.time() - start_time
        if self.verbosity > 0:
            self._summary()

    def _solve_unpenalized(self):
        # nothing to penalize: a single sub-solve answers the problem
        self.state.rho = 1.0
        if self.verbosity > 0:
            print("Solving problem without penalized constraints")
        ret, xcur, fcur = self.sub_solver.optimize(self.merit, self.box, self.xcur, constraints=self.g_sub,
                                                   max_eval=self.budget.remaining_evals(), max_time=self.budget.remaining_time())
        self.solve_status = as_status(ret)
        self.run_state = Failed(self.solve_status) if is_failure(ret) else Converged(self.solve_status)
        self.nit = 1
        self.x = np.asarray(xcur, dtype=float)
        self.f = fcur
        if not is_failure(ret):
            h_x, g_x = self.problem.eval_constraints(self.x)
            self.infeas, self.feasible = evaluate_feasibility(h_x, self.problem.h_tols, g_x, self.problem.g_tols)

    def _initial_penalty(self):
        # starting rho suggested by Birgin & Martinez
        problem = self.problem
        self.budget.nevals += 1
        fcur = problem.f(self.xcur)
        h_x, g_x = problem.eval_constraints(self.xcur)
        infeas, feasible = evaluate_feasibility(h_x, problem.h_tols, g_x, problem.g_tols)
        self.record.update(self.xcur, fcur, infeas, feasible)
        self.state.set_initial_penalty(fcur, squared_infeasibility(h_x, self._penalized(g_x)))

    def _step(self):
        st = self.state
        budget = self.budget
        problem = self.problem
        prev_icm = self.icm

        ret, xcur, _ = self.sub_solver.optimize(self.merit, self.box, self.xcur, constraints=self.g_sub,
                                                max_eval=budget.remaining_evals(), max_time=budget.remaining_time())
        if is_failure(ret):
            return Failed(as_status(ret))
        self.xcur = np.asarray(xcur, dtype=float).reshape(-1)
        self.nit += 1

        budget.nevals += 1
        fcur = problem.f(self.xcur)
        h_x, g_x = problem.eval_constraints(self.xcur)
        g_pen = self._penalized(g_x)

        self.icm = infeasibility_measure(h_x, g_pen, st.mu, st.rho)
        st.update_multipliers(h_x, g_pen)
        st.update_penalty(self.icm, prev_icm)
        infeas, feasible = evaluate_feasibility(h_x, problem.h_tols, g_x, problem.g_tols)

        self.f_hist.append(fcur)
        self.total_infeas.append(infeas)
        self.icm_hist.append(self.icm)
        self.rho_hist.append(st.rho)
        self.lbda_hist.append(st.lbda.copy())
        self.mu_hist.append(st.mu.copy())
        if self.verbosity > 0:
            print(f"{self.nit:<5} | {fcur:<10.4e} | {infeas:<12.4e} | {self.icm:<10.4e} | {st.rho:<10.4e}")
            if self.verbosity > 1:
                print(f"{'':<5} | lambda = {np.array2string(st.lbda, precision=6)}")
                print(f"{'':<5} | mu     = {np.array2string(st.mu, precision=6)}")
        if problem.callback is not None:
            problem.callback(iter=self.nit, x=self.xcur.copy(), fcur=fcur, lbda=st.lbda.copy(), mu=st.mu.copy(), rho=st.rho, icm=self.icm)

        record = self.record
        if accepts(record, fcur, infeas, feasible):
            reason = Status.SUCCESS
            if feasible:
                if fcur < budget.minf_max:
                    reason = Status.MIN_OBJECTIVE_REACHED
                elif budget.stop_ftol(fcur, record.f):
                    reason = Status.FTOL_REACHED
                elif budget.stop_x(self.xcur, record.x):
                    reason = Status.XTOL_REACHED
            else:
                # no progress towards feasibility
                if budget.stop_ftol(fcur, record.f) and budget.stop_ftol(infeas, record.infeas):
                    reason = Status.FTOL_REACHED
                elif budget.stop_x(self.xcur, record.x):
                    reason = Status.XTOL_REACHED
            record.update(self.xcur, fcur, infeas, feasible)
            if reason != Status.SUCCESS:
                return Converged(reason)

        if budget.stop_evals():
            return Converged(Status.MAXEVAL_REACHED)
        if budget.stop_time():
            return Converged(Status.MAXTIME_REACHED)
        if self.icm == 0:
            return Converged(Status.FTOL_REACHED)
        return ITERATING

    def _summary(self):
        print("-" * 60)
        if isinstance(self.run_state, Failed):
            print(f"Sub-solver failed with status {self.solve_status}.")
        else:
            print(f"Stopped after {self.nit} iterations: {getattr(self.solve_status, 'name', self.solve_status)}.")
        print(f"{'f value:':<25} {self.f:.6e}")
        print(f"{'total infeas:':<25} {self.infeas:.6e}")
        print(f"{'feasible:':<25} {self.feasible}")
        if self.rho is not None:
            print(f"{'rho:':<25} {self.rho:.6e}")
        print(f"{'evaluations:':<25} {self.budget.nevals}")


class Result:
    def __init__(self, x, f, solve_status, infeas, feasible, rho, lbda, mu, nevals, nit, f_hist, total_infeas, icm_hist, rho_hist, lbda_hist, mu_hist, runtime):
        self.x = x
        self.f = f
        self.solve_status = solve_status
        self.infeas = infeas
        self.feasible = feasible
        self.rho = rho
        self.lbda = lbda
        self.mu = mu
        self.nevals = nevals
        self.nit = nit
        self.f_hist = f_hist
        self.total_infeas = total_infeas
        self.icm_hist = icm_hist
        self.rho_hist = rho_hist
        self.lbda_hist = lbda_hist
        self.mu_hist = mu_hist
        self.runtime = runtime

    @property
    def success(self):
        return not is_failure(self.solve_status)


def solve(problem, x0, sub_solver=None, delegate_inequalities=False, budget=None, verbosity=1, maxeval=100000, maxtime=0.0,
          ftol_rel=1e-10, ftol_abs=0.0, xtol_rel=1e-8, xtol_abs=0.0, minf_max=-np.inf):
    solution = Solution(problem, x0, sub_solver=sub_solver, delegate_inequalities=delegate_inequalities, budget=budget,
                        verbosity=verbosity, maxeval=maxeval, maxtime=maxtime, ftol_rel=ftol_rel, ftol_abs=ftol_abs,
                        xtol_rel=xtol_rel, xtol_abs=xtol_abs, minf_max=minf_max)
    solution.auglag()
    res = Result(solution.x, solution.f, solution.solve_status, solution.infeas, solution.feasible, solution.rho, solution.lbda, solution.mu,
                 solution.budget.nevals, solution.nit, solution.f_hist, solution.total_infeas, solution.icm_hist, solution.rho_hist,
                 solution.lbda_hist, solution.mu_hist, solution.runtime)
    return res
