"""Synthesis engine contracts.

The engine input is a tagged union on ``mode``: a finalize request has no
message field at all, so it can never carry stale conversation turns.
"""

from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import Field, field_validator

from .common import CamelModel, DocumentModel
from .message_contracts import Message
from .specification_contracts import FormalPRD, PlainEnglishSummary, Specification


class SynthesisMode(str, Enum):
    """Which synthesis pass to run."""
    UPDATE = "update"
    FINALIZE = "finalize"


class UpdateInput(CamelModel):
    """Fold newly appended messages into the current specification."""
    mode: Literal["update"] = "update"
    current_spec: Specification
    last_messages: List[Message] = Field(default_factory=list)
    is_first_run: bool = False


class FinalizeInput(CamelModel):
    """Polish the current specification for handoff; no new facts allowed."""
    mode: Literal["finalize"] = "finalize"
    current_spec: Specification


SynthesisInput = Annotated[Union[UpdateInput, FinalizeInput], Field(discriminator="mode")]


class SynthesisOutput(CamelModel):
    """Engine result: the full specification plus what is still missing."""
    spec: Specification
    missing_sections: List[str] = Field(default_factory=list)


class SpecBody(DocumentModel):
    """Document body as written by the model (identity and version are ours)."""
    plain_english_summary: PlainEnglishSummary = Field(default_factory=PlainEnglishSummary)
    formal_prd: FormalPRD = Field(default_factory=FormalPRD, alias="formalPRD")


class SynthesisPayload(DocumentModel):
    """The JSON document the model is asked to return.

    Only a missing or non-object ``spec`` makes it unusable; a null or absent
    ``missingSections`` reads as an empty list.
    """
    spec: SpecBody
    missing_sections: List[str] = Field(default_factory=list)

    @field_validator("missing_sections", mode="before")
    @classmethod
    def _as_names(cls, value):
        if isinstance(value, list):
            return [str(item) for item in value]
        return value
