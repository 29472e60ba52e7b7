import time

import numpy as np


def relstop(vold, vnew, reltol, abstol):
    if np.isinf(vold):
        return False
    diff = abs(vnew - vold)
    # the last test catches vnew == vold == 0
    return bool(diff < abstol
                or diff < reltol * (abs(vnew) + abs(vold)) * 0.5
                or (reltol > 0 and vnew == vold))


class StoppingBudget:
    """
    Stopping criteria and evaluation budget shared by one run.

    ``maxeval`` and ``maxtime`` disable their limit when <= 0. ``nevals`` is
    incremented by every merit function evaluation and by every true
    objective evaluation of the outer loop, so it never decreases.
    """
    def __init__(self, maxeval=0, maxtime=0.0, ftol_rel=0.0, ftol_abs=0.0, xtol_rel=0.0, xtol_abs=0.0, minf_max=-np.inf):
        self.maxeval = int(maxeval)
        self.maxtime = float(maxtime)
        self.ftol_rel = float(ftol_rel)
        self.ftol_abs = float(ftol_abs)
        self.xtol_rel = float(xtol_rel)
        self.xtol_abs = xtol_abs
        self.minf_max = float(minf_max)
        self.start = time.time()
        self.nevals = 0

    def restart(self):
        self.start = time.time()
        self.nevals = 0

    def elapsed(self):
        return time.time() - self.start

    def stop_ftol(self, f, oldf):
        return relstop(oldf, f, self.ftol_rel, self.ftol_abs)

    def stop_x(self, x, oldx):
        x = np.asarray(x, dtype=float)
        oldx = np.asarray(oldx, dtype=float)
        xtol_abs = np.broadcast_to(np.asarray(self.xtol_abs, dtype=float), x.shape)
        for i in range(x.shape[0]):
            if not relstop(oldx[i], x[i], self.xtol_rel, xtol_abs[i]):
                return False
        return True

    def stop_evals(self):
        return self.maxeval > 0 and self.nevals >= self.maxeval

    def stop_time(self):
        return self.maxtime > 0 and self.elapsed() >= self.maxtime

    def remaining_evals(self):
        if self.maxeval <= 0:
            return None
        return max(self.maxeval - self.nevals, 0)

    def remaining_time(self):
        if self.maxtime <= 0:
            return None
        return max(self.maxtime - self.elapsed(), 0.0)
