"""
Domain error taxonomy shared by every core service.

Services raise exactly one of these kinds; the HTTP boundary maps them to
status codes in ``marketplace.core.exception_handlers``.
"""


class MarketplaceError(Exception):
    code = "marketplace_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(MarketplaceError):
    """A referenced order, restaurant, menu item, discount or user is absent."""
    code = "not_found"
    status_code = 404


class InvalidState(MarketplaceError):
    """Mutation attempted against an order that is no longer PENDING."""
    code = "invalid_state"
    status_code = 409


class InvalidTransition(MarketplaceError):
    """Restaurant/request status change not permitted by the workflow."""
    code = "invalid_transition"
    status_code = 409


class ValidationError(MarketplaceError):
    code = "validation_error"
    status_code = 400


class Forbidden(MarketplaceError):
    """Caller is not the owner of the resource."""
    code = "forbidden"
    status_code = 403
