import jax
import jax.numpy as jnp
import numpy as np
import auglag

jax.config.update('jax_platform_name', 'cpu')
if not jax.config.jax_enable_x64:
    jax.config.update("jax_enable_x64", True)


def get_disk_problem(n, radius=1.0, key=1234):
    rng = np.random.default_rng(key)
    c = jnp.array(rng.standard_normal(n))

    def f(x):
        return jnp.dot(c, x)
    def g(x):
        return jnp.sum(x**2) - radius**2

    x_star = -radius * c / jnp.linalg.norm(c)
    problem = auglag.Problem(
        f=f,
        g=auglag.Constraint(g, tol=1e-8),
        lb=-10.0,
        ub=10.0,
        jittable=True
    )
    return problem, x_star, f(x_star)


def run_disk_benchmark(n):
    problem, x_star, f_star = get_disk_problem(n)
    rng = np.random.default_rng(1234)
    x0 = rng.uniform(-2.0, 2.0, n)

    print(f"f_star: {f_star}")
    print(f"f0: {problem.f(x0)}")

    runs = [
        ("L-BFGS-B, penalized", auglag.ScipySubSolver("L-BFGS-B"), False),
        ("TNC, penalized", auglag.ScipySubSolver("TNC"), False),
        ("SLSQP, delegated", auglag.ScipySubSolver("SLSQP"), True),
    ]
    results = []
    for name, sub_solver, delegate in runs:
        print(f"\n{name}")
        res = auglag.solve(problem, x0, sub_solver=sub_solver, delegate_inequalities=delegate, verbosity=1, maxeval=50000)
        results.append((name, res))

    print(f"\n{'run':<22} | {'f - f_star':<12} | {'||x - x_star||':<14} | {'evals':<8} | {'time (s)':<8}")
    print("-" * 76)
    for name, res in results:
        print(f"{name:<22} | {res.f - f_star:<12.4e} | {np.linalg.norm(res.x - x_star):<14.4e} | {res.nevals:<8} | {res.runtime:<8.3f}")


def run_equality_example():
    # x^2 subject to x = 1
    problem = auglag.Problem(
        f=lambda x: x[0]**2,
        h=[(lambda x: x[0] - 1, 1e-6)],
        lb=-10.0,
        ub=10.0
    )
    res = auglag.solve(problem, [0.0], verbosity=2)
    print(f"x = {res.x}, lambda = {res.lbda}, status = {res.solve_status!r}")


if __name__ == "__main__":
    run_equality_example()
    run_disk_benchmark(10)
