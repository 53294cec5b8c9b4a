"""Exception types raised by the analysis core."""


class InsufficientDataError(ValueError):
    """Raised when a calculation is given fewer candles than it needs."""


class SingularMatrixError(ArithmeticError):
    """Raised when Gauss-Jordan elimination finds no usable pivot."""
