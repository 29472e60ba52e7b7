from enum import IntEnum


class Status(IntEnum):
    FAILURE = -1
    INVALID_ARGS = -2
    OUT_OF_MEMORY = -3
    ROUNDOFF_LIMITED = -4
    FORCED_STOP = -5
    SUCCESS = 1
    MIN_OBJECTIVE_REACHED = 2
    FTOL_REACHED = 3
    XTOL_REACHED = 4
    MAXEVAL_REACHED = 5
    MAXTIME_REACHED = 6


def as_status(code):
    """Map a raw return code onto Status, leaving unknown codes as plain ints."""
    try:
        return Status(code)
    except ValueError:
        return int(code)


def is_failure(code):
    return int(code) < 0


class Iterating:
    terminal = False

    def __repr__(self):
        return "Iterating()"


class Converged:
    terminal = True

    def __init__(self, reason):
        self.reason = reason

    @property
    def code(self):
        return self.reason

    def __eq__(self, other):
        return isinstance(other, Converged) and other.reason == self.reason

    def __repr__(self):
        return f"Converged({self.reason!r})"


class Failed:
    terminal = True

    def __init__(self, code):
        self.code = code

    def __eq__(self, other):
        return isinstance(other, Failed) and other.code == self.code

    def __repr__(self):
        return f"Failed({self.code!r})"


ITERATING = Iterating()
