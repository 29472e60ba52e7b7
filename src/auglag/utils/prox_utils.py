import numpy as np
np.NaN = np.nan
import proxop


def make_box(n, lb=None, ub=None):
    """
    Build the bound set [lb, ub] of an n-dimensional problem.

    Missing bounds are infinite; scalars are broadcast to every variable.
    """
    low = np.full(n, -np.inf) if lb is None else np.array(np.broadcast_to(np.asarray(lb, dtype=float), (n,)))
    high = np.full(n, np.inf) if ub is None else np.array(np.broadcast_to(np.asarray(ub, dtype=float), (n,)))
    if np.any(np.isnan(low)) or np.any(np.isnan(high)):
        raise ValueError("Bounds must not contain NaN.")
    if np.any(low > high):
        raise ValueError("Every lower bound must be <= the corresponding upper bound.")
    return proxop.BoxConstraint(low=low, high=high)


def box_bounds(box, n):
    return (np.array(np.broadcast_to(np.asarray(box.low, dtype=float), (n,))),
            np.array(np.broadcast_to(np.asarray(box.high, dtype=float), (n,))))


def project(box, x):
    return np.asarray(box.prox(np.asarray(x, dtype=float)), dtype=float)
