"""Custom exceptions for the sales blitz engine"""


class BlitzSystemError(Exception):
    """Base exception for sales blitz errors"""
    pass


class ConfigurationError(BlitzSystemError):
    """Configuration loading errors"""
    pass


class DataSourceError(BlitzSystemError):
    """Upstream record source unavailable or query failed"""
    pass


class AggregationError(BlitzSystemError):
    """Aggregation called with unusable input"""
    pass


class LLMError(BlitzSystemError):
    """LLM API errors"""
    pass


class OracleResponseError(LLMError):
    """AI oracle answered with something we cannot use"""
    pass


class CacheError(BlitzSystemError):
    """Categorization cache read/write errors"""
    pass
