"""Shared base model and time helpers for all contracts."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Current time as naive UTC (the form every store round-trips)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CamelModel(BaseModel):
    """Base for contracts exchanged with the model and the client.

    Attributes are snake_case in Python and camelCase on the wire.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """Dump as a JSON-compatible dict using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class DocumentModel(CamelModel):
    """CamelModel for documents the LLM writes.

    ``null`` fields and ``null`` list items are dropped before validation, so
    they take their zero values instead of failing the whole document.
    """

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        if not isinstance(data, dict):
            return data
        cleaned = {}
        for key, value in data.items():
            if value is None:
                continue
            if isinstance(value, list):
                value = [item for item in value if item is not None]
            cleaned[key] = value
        return cleaned
