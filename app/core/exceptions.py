class CatalogError(Exception):
    """Base exception for all catalog service errors."""


class ValidationError(CatalogError):
    """Raised when input is rejected before any network call is made."""


class ServiceError(CatalogError):
    """Raised when an external collaborator fails or reports success=false."""


class EncodingError(CatalogError):
    """Raised when a rendered card cannot be encoded to PNG."""
