"""Custom exceptions for perf-cache."""


class PerfCacheError(Exception):
    """Base exception for perf-cache errors."""

    pass


class ConfigurationError(PerfCacheError, ValueError):
    """Exception raised when an optimizer or cache is misconfigured."""

    pass


class CacheBackendError(PerfCacheError):
    """Exception raised when backend operations fail."""

    pass


class CacheSerializationError(PerfCacheError):
    """Exception raised when a value cannot be copied into or out of the cache."""

    pass


class ProviderCallError(PerfCacheError):
    """Exception raised when a wrapped AI provider call fails."""

    pass
