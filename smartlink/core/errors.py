"""
Domain errors raised by the store and the resolver.

Routes translate these into HTTP responses; nothing below the API layer
knows about status codes.
"""


class SmartlinkError(Exception):
    """Base class for all domain errors."""


class EntityNotFound(SmartlinkError):
    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class GroupLocked(SmartlinkError):
    """Mutation refused because the group is published."""

    def __init__(self, group_id: str, action: str):
        self.group_id = group_id
        self.action = action
        super().__init__(f"Group {group_id} is published; cannot {action}")


class ShortCodeExhausted(SmartlinkError):
    """Could not allocate unique short codes within the retry budget."""


class StoreUnavailable(SmartlinkError):
    """Transient infrastructure failure talking to the backing store."""
