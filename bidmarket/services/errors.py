"""
Domain error taxonomy for the bid marketplace.

Services raise these; routers map them onto HTTP status codes. Only the
acceptance coordinator retries, once, when its conditional write loses a race.
"""


class MarketplaceError(Exception):
    pass


class ValidationError(MarketplaceError):
    """Malformed or incomplete input. Safe to retry after correction."""


class NotAuthorizedError(MarketplaceError):
    """Actor lacks the right relationship to the entity. Never retried."""


class NotFoundError(MarketplaceError):
    pass


class InvalidStateError(MarketplaceError):
    """Operation not valid for the entity's current lifecycle state."""


class ConflictError(MarketplaceError):
    """Lost a race with another committed writer."""


class IntegrityError(MarketplaceError):
    """Persisted state violates an engine invariant. Logged, never retried."""
