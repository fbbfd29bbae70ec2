"""Custom exceptions for the conceptvault package."""


class ConceptVaultError(Exception):
    """Base class for all errors raised by conceptvault."""
    pass


class ValidationError(ConceptVaultError):
    """Exception raised when input would break a graph or hierarchy invariant.

    Covers malformed merge input, node id collisions, dangling link
    endpoints, unknown mastery statuses and invalid configuration values.
    """
    pass


class NotFoundError(ConceptVaultError):
    """Exception raised when an id is absent from the graph or the hierarchy."""
    pass


class ExternalServiceError(ConceptVaultError):
    """Exception raised when an external collaborator call fails or returns unparseable data."""
    pass


class StaleResponseError(ConceptVaultError):
    """Exception raised internally for a response superseded by a newer request."""
    pass
