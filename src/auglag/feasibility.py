import numpy as np


def evaluate_feasibility(h_x, h_tols, g_x, g_tols):
    """
    Total violation and feasibility flag of a point.

    The violation is sum |h_i| + sum max(g_j, 0); the point is feasible when
    every |h_i| <= tol_i and every g_j <= tol_j.
    """
    h_x = np.asarray(h_x, dtype=float)
    g_x = np.asarray(g_x, dtype=float)
    infeas = float(np.sum(np.abs(h_x)) + np.sum(np.maximum(g_x, 0)))
    feasible = bool(np.all(np.abs(h_x) <= np.asarray(h_tols, dtype=float)) and np.all(g_x <= np.asarray(g_tols, dtype=float)))
    return infeas, feasible


def squared_infeasibility(h_x, g_x):
    h_x = np.asarray(h_x, dtype=float)
    g_x = np.asarray(g_x, dtype=float)
    return float(np.sum(h_x**2) + np.sum(np.maximum(g_x, 0)**2))


def infeasibility_measure(h_x, g_x, mu, rho):
    # inequality residuals are complementarity-adjusted: max(g_j, -mu_j/rho)
    h_x = np.asarray(h_x, dtype=float)
    g_x = np.asarray(g_x, dtype=float)
    icm = 0.0
    if h_x.size:
        icm = max(icm, float(np.max(np.abs(h_x))))
    if g_x.size:
        icm = max(icm, float(np.max(np.abs(np.maximum(g_x, -np.asarray(mu, dtype=float) / rho)))))
    return icm


def accepts(record, fcur, infeas, feasible):
    # ties on the violation sum of two infeasible points are accepted
    return ((feasible and (not record.feasible or infeas < record.infeas or fcur <= record.f))
            or (not record.feasible and infeas <= record.infeas))
