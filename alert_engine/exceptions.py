"""
Exceptions raised by the rule alert engine
"""


class AlertEngineError(Exception):
    """Base class for all alert engine errors."""
    pass


class ConfigurationError(AlertEngineError, ValueError):
    """Raised when the engine is constructed with missing or invalid configuration."""
    pass


class RuleEvaluationError(AlertEngineError):
    """Raised when a single rule cannot be evaluated."""
    pass


class RuleComplexityError(RuleEvaluationError):
    """Raised when a condition tree exceeds the nesting or breadth limits."""
    pass


class InvalidConditionError(RuleEvaluationError):
    """Raised when a condition tree cannot be parsed."""
    pass
