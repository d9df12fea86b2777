class GradewiseError(Exception):
    pass


class ValidationError(GradewiseError, ValueError):
    """Input rejected before anything is persisted."""


class PersistenceError(GradewiseError):
    """The storage layer failed; the original exception is chained."""
