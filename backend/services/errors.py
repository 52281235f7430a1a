"""
Error taxonomy for the relationship service and the document store.

Request handlers never catch these one by one; server.py maps each class
to an HTTP status code.
"""


class RelationshipError(Exception):
    """Base class for every error raised by the relationship layer"""


class NotFoundError(RelationshipError):
    """A Contact or Company does not exist under the caller's owner id"""

    def __init__(self, entity_kind: str, entity_id=None, message: str = None):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        if message is None:
            message = f"{entity_kind.capitalize()} not found"
        super().__init__(message)


class ValidationMismatchError(NotFoundError):
    """Some of the requested contact ids did not resolve under the owner"""

    def __init__(self, requested: int, resolved: int):
        self.requested = requested
        self.resolved = resolved
        super().__init__("contact", message="One or more contacts not found")


class PersistenceError(RelationshipError):
    """The underlying store failed to read or write a document"""
