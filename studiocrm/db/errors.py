from __future__ import annotations


class CrmError(ValueError):
    """A business rule rejected the operation. Message is safe to show."""


class CrmNotFound(LookupError):
    def __init__(self, entity: str, key):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key
