"""Error taxonomy shared by every pipeline component."""


class PipelineError(Exception):
    """Base class for all errors raised by the package."""


class ConfigurationError(PipelineError, ValueError):
    """Invalid configuration: unknown columns, bad proportions, bad grids."""


class DataError(PipelineError, ValueError):
    """Data that a step cannot work with (wrong type, all missing, ...)."""


class NotPreppedError(PipelineError, RuntimeError):
    """A recipe or model was used before being fitted."""


class GridSearchError(PipelineError, RuntimeError):
    """No usable result is available from a grid search."""
