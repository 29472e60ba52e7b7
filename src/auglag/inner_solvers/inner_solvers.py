import time

import numpy as np
from scipy.optimize import Bounds, minimize

from ..status import Status
from ..utils.prox_utils import box_bounds

# method: (uses gradients, handles inequality constraints)
SCIPY_METHODS = {
    "L-BFGS-B": (True, False),
    "TNC": (True, False),
    "SLSQP": (True, True),
    "trust-constr": (True, True),
    "Nelder-Mead": (False, False),
    "Powell": (False, False),
    "COBYLA": (False, True),
    "COBYQA": (False, True),
}

DEFAULT_OPTIONS = {
    "L-BFGS-B": {"ftol": 1e-15, "gtol": 1e-10, "maxiter": 15000, "maxfun": 10**7, "maxcor": 20},
    "TNC": {"ftol": 1e-15, "gtol": 1e-10, "maxfun": 10**7},
    "SLSQP": {"ftol": 1e-12, "maxiter": 1000},
    "trust-constr": {"gtol": 1e-10, "xtol": 1e-12, "maxiter": 5000},
    "Nelder-Mead": {"xatol": 1e-10, "fatol": 1e-12, "maxiter": 20000, "maxfev": 10**7},
    "Powell": {"xtol": 1e-10, "ftol": 1e-12, "maxiter": 20000, "maxfev": 10**7},
    "COBYLA": {"tol": 1e-10, "maxiter": 20000},
    "COBYQA": {"maxiter": 20000},
}


class BudgetExhausted(Exception):
    def __init__(self, status):
        super().__init__(status.name)
        self.status = status


class BudgetedObjective:
    """
    Wraps an Evaluable for scipy and stops the minimization once the
    evaluation or time budget of the sub-solve is used up.
    """
    def __init__(self, objective, need_gradient, max_eval=None, max_time=None):
        self.objective = objective
        self.need_gradient = need_gradient
        self.max_eval = max_eval
        self.max_time = max_time
        self.start = time.time()
        self.nevals = 0
        self.best_x = None
        self.best_f = np.inf
        self.last_x = None
        self.last_f = np.inf

    def __call__(self, x):
        if self.max_eval is not None and self.nevals >= self.max_eval:
            raise BudgetExhausted(Status.MAXEVAL_REACHED)
        if self.max_time is not None and time.time() - self.start >= self.max_time:
            raise BudgetExhausted(Status.MAXTIME_REACHED)
        self.nevals += 1
        val, grad = self.objective.evaluate(x, self.need_gradient)
        self.last_x = np.array(x, dtype=float, copy=True)
        self.last_f = val
        if val < self.best_f:
            self.best_x = self.last_x
            self.best_f = val
        if self.need_gradient:
            return val, grad
        return val


def _scipy_constraints(constraints, need_gradient):
    # scipy expects c(x) >= 0, ours are g(x) <= 0; tol only judges feasibility
    cons = []
    for c in constraints:
        con = {"type": "ineq", "fun": lambda x, c=c: -c.evaluate(x, False)[0]}
        if need_gradient:
            con["jac"] = lambda x, c=c: -c.evaluate(x, True)[1]
        cons.append(con)
    return cons


# option naming the allowed constraint violation of derivative-free methods
VIOLATION_OPTIONS = {"COBYLA": "catol", "COBYQA": "feasibility_tol"}


def _violation_tolerance(constraints):
    tol = min(getattr(c, "tol", 0.0) for c in constraints)
    return max(tol, 1e-12)


def scipy_minimize(objective, x0, lb, ub, constraints=(), method="L-BFGS-B", options=None, max_eval=None, max_time=None):
    if method not in SCIPY_METHODS:
        raise ValueError(f"Unsupported scipy method: {method}. Supported methods are {sorted(SCIPY_METHODS)}.")
    uses_grad, handles_constraints = SCIPY_METHODS[method]
    if constraints and not handles_constraints:
        raise ValueError(f"Method {method} cannot handle inequality constraints.")
    opts = dict(DEFAULT_OPTIONS[method])
    if constraints and method in VIOLATION_OPTIONS:
        opts[VIOLATION_OPTIONS[method]] = _violation_tolerance(constraints)
    if options is not None:
        opts.update(options)

    fun = BudgetedObjective(objective, uses_grad, max_eval=max_eval, max_time=max_time)
    kwargs = {"method": method, "jac": True if uses_grad else None, "bounds": Bounds(lb, ub), "options": opts}
    if constraints:
        kwargs["constraints"] = _scipy_constraints(constraints, uses_grad)

    try:
        res = minimize(fun, np.asarray(x0, dtype=float), **kwargs)
    except BudgetExhausted as e:
        if fun.last_x is None:
            return e.status, np.array(x0, dtype=float, copy=True), np.inf
        if constraints:
            return e.status, fun.last_x, fun.last_f
        return e.status, fun.best_x, fun.best_f

    x = np.asarray(res.x, dtype=float)
    fx = float(res.fun)
    if not (np.all(np.isfinite(x)) and np.isfinite(fx)):
        return Status.FAILURE, x, fx
    # SLSQP exit mode 4: inequality constraints incompatible
    if method == "SLSQP" and res.status == 4:
        return Status.FAILURE, x, fx
    return Status.SUCCESS, x, fx


class SubSolver:
    """
    Minimizer of the merit function over the bounds.

    ``optimize`` returns ``(status, x, value)``; a negative status reports a
    failure and is propagated unchanged by the outer loop.
    """
    supports_inequality_constraints = False

    def optimize(self, objective, bounds, x0, constraints=(), max_eval=None, max_time=None):
        raise NotImplementedError


class ScipySubSolver(SubSolver):
    def __init__(self, method=None, options=None):
        if method is not None and method not in SCIPY_METHODS:
            raise ValueError(f"Unsupported scipy method: {method}. Supported methods are {sorted(SCIPY_METHODS)}.")
        self.method = method
        self.options = options

    @property
    def supports_inequality_constraints(self):
        return self.method is None or SCIPY_METHODS[self.method][1]

    def optimize(self, objective, bounds, x0, constraints=(), max_eval=None, max_time=None):
        x0 = np.asarray(x0, dtype=float)
        lb, ub = box_bounds(bounds, x0.shape[0])
        method = self.method
        if method is None:
            method = "SLSQP" if constraints else "L-BFGS-B"
        return scipy_minimize(objective, x0, lb, ub, constraints=constraints, method=method, options=self.options, max_eval=max_eval, max_time=max_time)
