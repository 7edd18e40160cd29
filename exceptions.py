"""
Apple Price Forecaster - Error Types
------------------------------------
Exceptions and warnings raised by the forecasting pipeline.

Fatal errors (DataFetchError) abort a run. Everything else is isolated to the
model or stage that raised it and recorded in the pipeline result.
"""


class ForecastPipelineError(Exception):
    """Base class for pipeline errors."""


class DataFetchError(ForecastPipelineError):
    """The price source is unavailable, the ticker is unknown, or the returned range is empty or partial."""


class TransformError(ForecastPipelineError, ValueError):
    """A log or power transform was requested on non-positive values."""


class ModelConvergenceFailure(ForecastPipelineError):
    """An individual model could not be estimated."""


class InsufficientHistoryError(ModelConvergenceFailure):
    """The training window is too short for a model, e.g. fewer than two seasonal cycles."""


class DiagnosticComputationError(ForecastPipelineError):
    """A residual test cannot be computed, e.g. too few residuals for the lag."""


class NonStationaryAfterMaxDiff(UserWarning):
    """Differencing reached its limit before both unit-root tests agreed."""
