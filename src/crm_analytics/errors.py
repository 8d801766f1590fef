"""Custom exception types for the HubSpot CRM analytics engine."""


class CrmAnalyticsError(Exception):
    """Base exception for all recoverable CRM analytics errors."""


class ConfigurationError(CrmAnalyticsError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(CrmAnalyticsError):
    """Raised when the HubSpot access token is unavailable or rejected."""


class FetchError(CrmAnalyticsError):
    """Raised when a HubSpot API request fails or returns an unexpected response."""


class SchemaError(CrmAnalyticsError):
    """Raised when a pipeline definition has no stages to analyze."""


class DataValidationError(CrmAnalyticsError, ValueError):
    """Raised when caller parameters or payload values do not meet expected constraints."""
