"""Exceptions raised by the recommendation core."""


class InvalidRequestError(ValueError):
    """Raised before any side effect when a caller passes an invalid limit or action."""
    pass


class RecommendationStoreError(Exception):
    """Raised when recommendations cannot be persisted or feedback cannot be recorded."""
    pass
