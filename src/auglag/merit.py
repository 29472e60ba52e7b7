import numpy as np

from .functions import Evaluable


class MeritFunction(Evaluable):
    """
    Augmented Lagrangian of Birgin & Martinez.

        L(x) = f(x) + sum_i rho/2 (h_i(x) + lbda_i/rho)^2
                    + sum_j rho/2 max(0, g_j(x) + mu_j/rho)^2

    ``h`` holds every equality constraint and ``g`` only the inequality
    constraints folded into the penalty (none when the sub-solver handles
    them itself). Multipliers and ``rho`` are read from ``state`` on every
    call, so updating the state changes the function the sub-solver sees.
    Each call counts as one evaluation of ``budget``.
    """
    def __init__(self, f, h, g, state, budget):
        self.f = f
        self.h = list(h)
        self.g = list(g)
        self.state = state
        self.budget = budget

    def evaluate(self, x, need_gradient=False):
        st = self.state
        rho = st.rho
        gradtmp = st.gradtmp if need_gradient else None

        fx, f_grad = self.f.evaluate(x, need_gradient)
        L = float(fx)
        grad = np.array(f_grad, dtype=float) if need_gradient else None

        for i, c in enumerate(self.h):
            hi, c_grad = c.evaluate(x, need_gradient)
            hi = float(hi) + st.lbda[i] / rho
            L += 0.5 * rho * hi * hi
            if need_gradient:
                gradtmp[:] = c_grad
                grad += (rho * hi) * gradtmp

        for j, c in enumerate(self.g):
            gj, c_grad = c.evaluate(x, need_gradient)
            gj = float(gj) + st.mu[j] / rho
            if gj > 0:
                L += 0.5 * rho * gj * gj
                if need_gradient:
                    gradtmp[:] = c_grad
                    grad += (rho * gj) * gradtmp

        self.budget.nevals += 1
        return float(L), grad
