import numpy as np

# Birgin & Martinez constants
TAU = 0.5
GAM = 10.0
LAM_MIN = -1e20
LAM_MAX = 1e20
MU_MAX = 1e20

RHO_MIN = 1e-6
RHO_MAX = 10.0


class LagrangianState:
    """
    Penalty parameter, multipliers and gradient scratch space of one run.

    Use it as a context manager: the buffers are dropped when the block
    exits, whatever the exit path.
    """
    def __init__(self, n, p, m, rho=1.0):
        self.n = n
        self.rho = float(rho)
        self.gradtmp = np.zeros(n)
        self.lbda = np.zeros(p)
        self.mu = np.zeros(m)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def release(self):
        self.gradtmp = None
        self.lbda = None
        self.mu = None

    @property
    def released(self):
        return self.gradtmp is None

    def set_initial_penalty(self, fx0, con2):
        if con2 > 0:
            self.rho = max(RHO_MIN, min(RHO_MAX, 2 * abs(fx0) / con2))
        else:
            self.rho = RHO_MAX

    def update_multipliers(self, h_x, g_x):
        self.lbda += self.rho * np.asarray(h_x, dtype=float)
        np.clip(self.lbda, LAM_MIN, LAM_MAX, out=self.lbda)
        self.mu += self.rho * np.asarray(g_x, dtype=float)
        np.clip(self.mu, 0.0, MU_MAX, out=self.mu)

    def update_penalty(self, icm, prev_icm):
        if icm > TAU * prev_icm:
            self.rho *= GAM
            return True
        return False


class IterateRecord:
    def __init__(self):
        self.x = None
        self.f = np.inf
        self.infeas = np.inf
        self.feasible = False

    def update(self, x, f, infeas, feasible):
        self.x = np.array(x, dtype=float, copy=True)
        self.f = float(f)
        self.infeas = float(infeas)
        self.feasible = bool(feasible)

    def __repr__(self):
        return f"IterateRecord(f={self.f:.6e}, infeas={self.infeas:.6e}, feasible={self.feasible})"
