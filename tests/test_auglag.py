import importlib

import numpy as np
import pytest

import auglag
from auglag import Constraint, Problem, ScipySubSolver, Solution, Status, SubSolver

core = importlib.import_module("auglag.auglag")


class ScriptedSubSolver(SubSolver):
    """Returns a fixed sequence of points, evaluating the merit function once per call."""
    supports_inequality_constraints = True

    def __init__(self, points, statuses=None):
        self.points = [np.asarray(p, dtype=float) for p in points]
        self.statuses = statuses if statuses is not None else [Status.SUCCESS]
        self.calls = []

    def optimize(self, objective, bounds, x0, constraints=(), max_eval=None, max_time=None):
        k = len(self.calls)
        self.calls.append({"x0": np.array(x0), "rho": objective.state.rho, "constraints": constraints,
                           "max_eval": max_eval, "max_time": max_time})
        x = self.points[min(k, len(self.points) - 1)]
        value, _ = objective.evaluate(x)
        return self.statuses[min(k, len(self.statuses) - 1)], x, value


class CountingSubSolver(ScipySubSolver):
    def __init__(self, method=None):
        super().__init__(method=method)
        self.rhos = []
        self.last = None

    def optimize(self, objective, *args, **kwargs):
        self.rhos.append(objective.state.rho)
        self.last = super().optimize(objective, *args, **kwargs)
        return self.last


def square_with_unit_equality(tol=1e-6):
    return Problem(
        f=lambda x: x[0]**2,
        f_grad=lambda x: np.array([2*x[0]]),
        h=[Constraint(lambda x: x[0] - 1, grad=lambda x: np.array([1.0]), tol=tol)],
        lb=-10.0,
        ub=10.0,
    )


def linear_over_disk(lb=-10.0, ub=10.0):
    return Problem(
        f=lambda x: x[0] + x[1],
        f_grad=lambda x: np.ones(2),
        g=[Constraint(lambda x: x[0]**2 + x[1]**2 - 1, grad=lambda x: 2*x, tol=1e-6)],
        lb=lb,
        ub=ub,
    )


def test_scenario_equality_constrained_square():
    res = auglag.solve(square_with_unit_equality(), [0.0], verbosity=0, maxeval=20000)
    assert res.solve_status in (Status.FTOL_REACHED, Status.XTOL_REACHED)
    assert res.success
    assert res.feasible
    assert abs(res.x[0] - 1) < 1e-5
    assert res.f == pytest.approx(1.0, abs=1e-4)
    assert res.infeas < 1e-6
    assert res.lbda[0] == pytest.approx(-2.0, abs=1e-2)


def test_scenario_linear_objective_over_disk():
    res = auglag.solve(linear_over_disk(), [2.0, 2.0], verbosity=0, maxeval=20000)
    assert res.success
    assert res.feasible
    assert res.x[0]**2 + res.x[1]**2 <= 1 + 1e-6
    assert res.f == pytest.approx(-np.sqrt(2), abs=1e-4)
    assert np.allclose(res.x, -np.ones(2) / np.sqrt(2), atol=1e-3)
    assert res.mu[0] == pytest.approx(1 / np.sqrt(2), abs=1e-2)


def test_delegated_and_penalized_inequalities_agree():
    penalized = auglag.solve(linear_over_disk(), [2.0, 2.0], verbosity=0, maxeval=20000)
    delegated = auglag.solve(linear_over_disk(), [2.0, 2.0], delegate_inequalities=True, verbosity=0, maxeval=20000)
    assert penalized.feasible
    assert delegated.feasible
    assert penalized.f == pytest.approx(delegated.f, abs=1e-4)
    assert np.allclose(delegated.x, -np.ones(2) / np.sqrt(2), atol=1e-3)
    assert delegated.mu.size == 0


def test_unconstrained_problem_is_a_single_sub_solve():
    problem = Problem(f=lambda x: (x[0] - 2)**2 + (x[1] + 1)**2, f_grad=lambda x: np.array([2*(x[0] - 2), 2*(x[1] + 1)]))
    solver = CountingSubSolver()
    res = auglag.solve(problem, np.zeros(2), sub_solver=solver, verbosity=0)
    assert solver.rhos == [1.0]
    status, x, value = solver.last
    assert res.solve_status == status
    assert np.array_equal(res.x, x)
    assert res.f == value
    assert np.allclose(res.x, [2.0, -1.0], atol=1e-6)


def test_initial_penalty_from_start_point():
    solver = ScriptedSubSolver([[1.5]], statuses=[Status.FAILURE])
    auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0)
    # f(x0) = 0 gives the lower clamp
    assert solver.calls[0]["rho"] == pytest.approx(1e-6)

    solver = ScriptedSubSolver([[1.5]], statuses=[Status.FAILURE])
    auglag.solve(square_with_unit_equality(), [1.0], sub_solver=solver, verbosity=0)
    # feasible start: con2 == 0 gives the upper clamp
    assert solver.calls[0]["rho"] == pytest.approx(10.0)


def test_sub_solver_receives_remaining_budget():
    solver = ScriptedSubSolver([[1.5]], statuses=[Status.FAILURE])
    auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0, maxeval=50, maxtime=100.0)
    assert solver.calls[0]["max_eval"] == 49
    assert 0 < solver.calls[0]["max_time"] <= 100.0

    solver = ScriptedSubSolver([[1.5]], statuses=[Status.FAILURE])
    auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0, maxeval=0)
    assert solver.calls[0]["max_eval"] is None
    assert solver.calls[0]["max_time"] is None


def test_sub_solver_failure_stops_immediately():
    solver = ScriptedSubSolver([[0.5], [0.9]], statuses=[Status.FAILURE])
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0)
    assert res.solve_status == Status.FAILURE
    assert not res.success
    assert len(solver.calls) == 1
    assert np.array_equal(res.x, [0.0])


def test_unknown_failure_code_passes_through():
    solver = ScriptedSubSolver([[0.5]], statuses=[-42])
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0)
    assert res.solve_status == -42
    assert not isinstance(res.solve_status, Status)


def test_out_of_memory_before_any_sub_solve(monkeypatch):
    def no_memory(*args, **kwargs):
        raise MemoryError

    monkeypatch.setattr(core, "LagrangianState", no_memory)
    solver = ScriptedSubSolver([[0.5]])
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0)
    assert res.solve_status == Status.OUT_OF_MEMORY
    assert solver.calls == []


def test_evaluation_budget_stops_the_loop():
    solver = ScriptedSubSolver([[0.1], [0.2], [0.3], [0.4], [0.5], [0.6]])
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0, maxeval=7, ftol_rel=0.0, xtol_rel=0.0)
    # one evaluation for the initial penalty, two per iteration
    assert res.solve_status == Status.MAXEVAL_REACHED
    assert res.nevals == 7
    assert res.nit == 3


def test_evaluation_budget_with_scipy_sub_solver():
    res = auglag.solve(square_with_unit_equality(), [0.0], verbosity=0, maxeval=30, ftol_rel=0.0, xtol_rel=0.0)
    assert res.solve_status == Status.MAXEVAL_REACHED
    assert 30 <= res.nevals <= 31


def test_time_budget_stops_the_loop():
    solver = ScriptedSubSolver([[0.1], [0.2]])
    budget = auglag.StoppingBudget(maxtime=1e-9)
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, budget=budget, verbosity=0)
    assert res.solve_status == Status.MAXTIME_REACHED
    assert res.nit == 1


def test_perfect_feasibility_stops():
    solver = ScriptedSubSolver([[0.5], [1.0]])
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0, ftol_rel=0.0, xtol_rel=0.0)
    assert res.solve_status == Status.FTOL_REACHED
    assert res.nit == 2
    assert res.icm_hist[-1] == 0.0
    assert res.x[0] == 1.0


def test_min_objective_threshold():
    solver = ScriptedSubSolver([[0.5], [1.0000001]])
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0, ftol_rel=0.0, xtol_rel=0.0, minf_max=2.0)
    assert res.solve_status == Status.MIN_OBJECTIVE_REACHED
    assert res.nit == 2


def test_point_tolerance_on_infeasible_best():
    solver = ScriptedSubSolver([[0.5], [0.5]])
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0, ftol_rel=0.0, xtol_rel=1e-8)
    assert res.solve_status == Status.XTOL_REACHED
    assert res.nit == 2
    assert not res.feasible


def test_no_progress_towards_feasibility():
    solver = ScriptedSubSolver([[0.5], [0.5]])
    res = auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0, ftol_rel=1e-8, xtol_rel=0.0)
    assert res.solve_status == Status.FTOL_REACHED
    assert res.nit == 2


def test_penalty_and_multiplier_invariants():
    for problem, x0 in ((square_with_unit_equality(), [0.0]), (linear_over_disk(), [2.0, 2.0])):
        res = auglag.solve(problem, x0, verbosity=0, maxeval=20000)
        rhos = np.array(res.rho_hist)
        assert np.all(np.diff(rhos) >= 0)
        for prev, cur in zip(rhos[:-1], rhos[1:]):
            assert cur == prev or cur == pytest.approx(10 * prev, rel=1e-12)
        for lbda in res.lbda_hist:
            assert np.all((lbda >= -1e20) & (lbda <= 1e20))
        for mu in res.mu_hist:
            assert np.all((mu >= 0) & (mu <= 1e20))


def test_feasible_best_stays_feasible_and_improves():
    y = 1.0001
    points = [[1.5, y], [0.5, y], [0.2, y], [2.0, y], [0.8, y], [0.7, y]]
    solver = ScriptedSubSolver(points)
    snapshots = []
    holder = {}

    def callback(**kwargs):
        rec = holder["solution"].record
        snapshots.append((rec.f, rec.feasible))

    problem = Problem(
        f=lambda x: -x[0],
        f_grad=lambda x: np.array([-1.0, 0.0]),
        h=[Constraint(lambda x: x[1] - 1, grad=lambda x: np.array([0.0, 1.0]), tol=1e-3)],
        g=[Constraint(lambda x: x[0] - 1, grad=lambda x: np.array([1.0, 0.0]))],
        callback=callback,
    )
    solution = Solution(problem, [3.0, y], sub_solver=solver, verbosity=0, maxeval=13, ftol_rel=0.0, xtol_rel=0.0)
    holder["solution"] = solution
    solution.auglag()
    snapshots.append((solution.record.f, solution.record.feasible))

    assert solution.solve_status == Status.MAXEVAL_REACHED
    assert solution.nit == 6
    first = next(i for i, (_, feasible) in enumerate(snapshots) if feasible)
    feasible_fs = [f for f, _ in snapshots[first:]]
    assert all(feasible for _, feasible in snapshots[first:])
    assert all(b <= a for a, b in zip(feasible_fs[:-1], feasible_fs[1:]))
    assert np.allclose(solution.x, [0.8, y])
    assert solution.f == pytest.approx(-0.8)


def test_delegated_constraints_go_to_the_sub_solver_only():
    problem = Problem(
        f=lambda x: x[0]**2 + x[1]**2,
        f_grad=lambda x: 2*x,
        h=[Constraint(lambda x: x[0] + x[1] - 1, grad=lambda x: np.ones(2), tol=1e-6)],
        g=[Constraint(lambda x: 0.2 - x[0], grad=lambda x: np.array([-1.0, 0.0]), tol=1e-6)],
    )
    solver = ScriptedSubSolver([[0.5, 0.5]], statuses=[Status.FAILURE])
    res = auglag.solve(problem, [0.0, 0.0], sub_solver=solver, delegate_inequalities=True, verbosity=0)
    assert solver.calls[0]["constraints"] == problem.g
    assert res.mu.size == 0
    assert res.lbda.size == 1

    solver = ScriptedSubSolver([[0.5, 0.5]], statuses=[Status.FAILURE])
    res = auglag.solve(problem, [0.0, 0.0], sub_solver=solver, verbosity=0)
    assert solver.calls[0]["constraints"] == ()
    assert res.mu.size == 1


def test_delegating_to_bounds_only_solver_is_rejected():
    with pytest.raises(ValueError):
        Solution(linear_over_disk(), [2.0, 2.0], sub_solver=ScipySubSolver(method="L-BFGS-B"), delegate_inequalities=True)


def test_wrong_dimension_is_rejected():
    problem = Problem(f=lambda x: x[0], n=2)
    with pytest.raises(ValueError):
        Solution(problem, [1.0, 2.0, 3.0])


def test_start_point_is_projected_onto_bounds():
    solver = ScriptedSubSolver([[0.5]], statuses=[Status.FAILURE])
    res = auglag.solve(square_with_unit_equality(), [50.0], sub_solver=solver, verbosity=0)
    assert np.array_equal(solver.calls[0]["x0"], [10.0])
    assert np.array_equal(res.x, [10.0])


def test_trace_output(capsys):
    solver = ScriptedSubSolver([[0.5], [1.0]])
    auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=2, ftol_rel=0.0, xtol_rel=0.0)
    out = capsys.readouterr().out
    assert "ICM" in out
    assert "rho" in out
    assert "lambda" in out
    assert "mu" in out
    assert "FTOL_REACHED" in out


def test_silent_run(capsys):
    solver = ScriptedSubSolver([[0.5], [1.0]])
    auglag.solve(square_with_unit_equality(), [0.0], sub_solver=solver, verbosity=0)
    assert capsys.readouterr().out == ""


def test_callback_sees_every_iteration():
    seen = []
    problem = square_with_unit_equality()
    problem.callback = lambda **kw: seen.append((kw["iter"], kw["rho"], kw["icm"]))
    solver = ScriptedSubSolver([[0.5], [0.75], [1.0]])
    res = auglag.solve(problem, [0.0], sub_solver=solver, verbosity=0, ftol_rel=0.0, xtol_rel=0.0)
    assert [it for it, _, _ in seen] == [1, 2, 3]
    assert [icm for _, _, icm in seen] == res.icm_hist


def test_constraint_specifications():
    fn = lambda x: x[0] - 1
    assert Problem(lambda x: x[0], h=(fn, 1e-3)).h_tols.tolist() == [1e-3]
    assert Problem(lambda x: x[0], h=[(fn, 1e-3), fn]).h_tols.tolist() == [1e-3, 0.0]
    assert Problem(lambda x: x[0], g=fn).g_tols.tolist() == [0.0]
    with pytest.raises(ValueError):
        Problem(lambda x: x[0], h=[1.0])
    with pytest.raises(ValueError):
        Problem(3.0)
