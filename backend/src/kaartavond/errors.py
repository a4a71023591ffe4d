from __future__ import annotations


class NotFoundError(LookupError):
    """Raised by a store when an entity id does not resolve."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(ValueError):
    """A write that would break a uniqueness or capacity rule."""


class EventLockedError(ConflictError):
    def __init__(self, event_id: str) -> None:
        super().__init__("event is locked")
        self.event_id = event_id


class InvalidTransitionError(ConflictError):
    def __init__(self, event_id: str, status: str) -> None:
        super().__init__(f"event is already {status.lower()}")
        self.event_id = event_id
        self.status = status


class LockRefusedError(Exception):
    """The lock gate refused an event; `reasons` lists every failed condition."""

    def __init__(self, event_id: str, reasons: list[str]) -> None:
        super().__init__("event cannot be locked")
        self.event_id = event_id
        self.reasons = reasons
