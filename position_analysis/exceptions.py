"""
exceptions.py - Error taxonomy for the position analysis.

Schema errors abort the run before any modeling. Model errors are raised
per model family and reported without stopping the sibling models.
"""


class PositionAnalysisError(Exception):
    """Base class for all analysis errors."""


class SchemaError(PositionAnalysisError, ValueError):
    """Input table is missing required columns or holds non-canonical labels."""

    def __init__(self, message: str, missing_columns=None):
        super().__init__(message)
        self.missing_columns = list(missing_columns or [])


class PositionModelError(PositionAnalysisError):
    """Base class for errors scoped to a single model family."""

    def __init__(self, message: str, model_name: str = None):
        super().__init__(message)
        self.model_name = model_name


class DegenerateClassError(PositionModelError, ValueError):
    """A class has too few examples to stratify or to fit a sub-model."""


class NumericalError(PositionModelError, ArithmeticError):
    """Singular covariance or non-convergence during fitting."""


class ModelStateError(PositionModelError, RuntimeError):
    """Illegal lifecycle transition (e.g. predicting with an untrained model)."""
