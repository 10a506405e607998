"""
Domain exceptions shared by the query layer, admin services and routes.
Routes translate these into HTTP responses (see nightlife.main).
"""
from typing import Dict, List, Optional


class NightlifeError(Exception):
    """Base class for application errors."""


class QueryError(NightlifeError):
    """
    A store round trip failed.
    The message carries the operation name and the store's own message,
    e.g. ``[get_venues_by_city] relation "venues" does not exist``.
    """

    def __init__(self, context: str, message: str):
        self.context = context
        self.store_message = message
        super().__init__(f"[{context}] {message}")


class NotFoundError(NightlifeError):
    """Target row of an admin write does not exist."""


class ConflictError(NightlifeError):
    """Slug already used by another row."""


class ValidationFailure(NightlifeError):
    """
    Business-level validation failure with field-level messages.
    Shape matches the RequestValidationError handler: {field: [messages]}.
    """

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        self.errors = errors
        super().__init__(message or "Validation failed")
