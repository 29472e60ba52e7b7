import numpy as np
import jax


class Evaluable:
    """
    Anything the solver can evaluate at a point.

    ``evaluate(x, need_gradient)`` returns ``(value, gradient)``; the gradient
    is a full length-n array when requested and ``None`` otherwise.
    """
    def evaluate(self, x, need_gradient=False):
        raise NotImplementedError

    def __call__(self, x):
        return self.evaluate(x, need_gradient=False)[0]


class Function(Evaluable):
    def __init__(self, fun, grad=None, autodiff=True, jittable=False):
        self.fun = jax.jit(fun) if jittable else fun
        self.grad_fn = grad
        self.autodiff = autodiff
        self.jittable = jittable
        self.count = 0

    def _get_grad_fn(self):
        if self.grad_fn is None:
            if not self.autodiff:
                raise ValueError("Gradient requested but none was supplied and autodiff is disabled.")
            self.grad_fn = jax.jit(jax.grad(self.fun)) if self.jittable else jax.grad(self.fun)
        return self.grad_fn

    def evaluate(self, x, need_gradient=False):
        self.count += 1
        value = np.asarray(self.fun(x), dtype=float).item()
        if not need_gradient:
            return value, None
        return value, np.asarray(self._get_grad_fn()(x), dtype=float).reshape(-1)

    def reset(self):
        self.count = 0


class Constraint(Function):
    """A scalar constraint function with its feasibility tolerance."""
    def __init__(self, fun, grad=None, tol=0.0, autodiff=True, jittable=False):
        super().__init__(fun, grad=grad, autodiff=autodiff, jittable=jittable)
        if tol < 0:
            raise ValueError(f"Constraint tolerance must be nonnegative, got {tol}.")
        self.tol = float(tol)


def as_constraint(c):
    if isinstance(c, Evaluable):
        return c
    if callable(c):
        return Constraint(c)
    if isinstance(c, tuple) and len(c) == 2 and callable(c[0]):
        return Constraint(c[0], tol=c[1])
    raise ValueError(f"Expected a callable, a (callable, tol) pair or a Constraint, got {type(c)}.")
