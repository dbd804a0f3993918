"""Custom exception types for the Buildkite build stats tool."""


class BuildStatsError(Exception):
    """Base exception for all build stats errors."""


class ConfigurationError(BuildStatsError):
    """Raised when runtime configuration values are missing or invalid."""


class InvalidTimestampName(ConfigurationError):
    """Raised when a report references an unknown build lifecycle timestamp."""


class QueryCompileError(ConfigurationError):
    """Raised when a report definition cannot be compiled into a query."""

    def __init__(self, report: str, field: str, reason: str) -> None:
        super().__init__(f"Invalid report '{report}': field '{field}': {reason}")
        self.report = report
        self.field = field
        self.reason = reason


class AuthenticationError(BuildStatsError):
    """Raised when Buildkite API credentials are unavailable or invalid."""


class ApiError(BuildStatsError):
    """Raised when a Buildkite API request fails or returns an unexpected response."""


class CacheError(BuildStatsError):
    """Raised when the cache backend cannot be read from or written to."""


class DataValidationError(BuildStatsError):
    """Raised when API payloads or cached data do not meet expected constraints."""


class TemplateRenderError(BuildStatsError):
    """Raised when a compiled group template cannot be rendered for a build."""
