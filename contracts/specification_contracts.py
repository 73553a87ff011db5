"""Specification contracts: plain-English summary, formal PRD and completeness.

The camelCase wire form of these models is exactly the JSON structure the
synthesis prompt asks the model to return.
"""

from enum import Enum
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from .common import CamelModel, DocumentModel, utcnow


# Every section a build-ready specification must cover, in display order.
REQUIRED_SECTIONS: List[str] = [
    "overview",
    "targetUsers",
    "keyFeatures",
    "flows",
    "rulesAndConstraints",
    "nonFunctional",
    "mvpDefinition",
]

# Reported when a synthesis response could not be used.
MINIMUM_SECTIONS: List[str] = ["overview", "targetUsers", "keyFeatures", "flows"]

NICE_TO_HAVE_SYNONYMS = {"nice", "should-have", "could-have", "optional", "low"}


class Priority(str, Enum):
    """Priority of a functional requirement."""
    MUST_HAVE = "must-have"
    NICE_TO_HAVE = "nice-to-have"


class MvpDefinition(DocumentModel):
    """What is in and out of the first version."""
    included: List[str] = Field(default_factory=list)
    excluded: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.included and not self.excluded


class PlainEnglishSummary(DocumentModel):
    """User-facing view of the specification."""
    overview: str = Field("", description="1-2 sentence elevator pitch")
    target_users: str = Field("", description="Who will use the product")
    key_features: List[str] = Field(default_factory=list)
    flows: List[str] = Field(default_factory=list, description="Key user journeys")
    rules_and_constraints: List[str] = Field(default_factory=list)
    non_functional: List[str] = Field(default_factory=list)
    mvp_definition: MvpDefinition = Field(default_factory=MvpDefinition)


class Requirement(DocumentModel):
    """A functional requirement in user-story form."""
    id: str = Field("", description="Assigned as req-<n> by FormalPRD when blank")
    user_story: str = Field("", description="As a [user], I want [goal], so that [benefit]")
    acceptance_criteria: List[str] = Field(
        default_factory=list,
        description="EARS statements: WHEN [trigger] THEN THE System SHALL [response]",
    )
    priority: Priority = Priority.MUST_HAVE

    @field_validator("priority", mode="before")
    @classmethod
    def _normalise_priority(cls, value):
        # Models write "Must Have", "must_have", "MUST-HAVE", "should-have"...
        if not isinstance(value, str):
            return value
        value = value.strip().lower().replace("_", "-").replace(" ", "-")
        if value in {p.value for p in Priority}:
            return value
        if value in NICE_TO_HAVE_SYNONYMS:
            return Priority.NICE_TO_HAVE
        return Priority.MUST_HAVE


class NonFunctionalRequirement(DocumentModel):
    """A quality attribute requirement."""
    id: str = Field("", description="Assigned as nfr-<n> by FormalPRD when blank")
    category: str = Field("", description="e.g. Performance, Security")
    description: str = Field("", description="THE System SHALL [requirement]")


class FormalPRD(DocumentModel):
    """Formal product requirements document."""
    introduction: str = ""
    glossary: Dict[str, str] = Field(default_factory=dict)
    requirements: List[Requirement] = Field(default_factory=list)
    non_functional_requirements: List[NonFunctionalRequirement] = Field(default_factory=list)

    @field_validator("glossary", mode="before")
    @classmethod
    def _drop_empty_terms(cls, value):
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value

    @model_validator(mode="after")
    def _number_blank_ids(self) -> "FormalPRD":
        self.requirements = [
            r if r.id.strip() else r.model_copy(update={"id": f"req-{i}"})
            for i, r in enumerate(self.requirements, start=1)
        ]
        self.non_functional_requirements = [
            n if n.id.strip() else n.model_copy(update={"id": f"nfr-{i}"})
            for i, n in enumerate(self.non_functional_requirements, start=1)
        ]
        return self


class Specification(CamelModel):
    """One version of a session's synthesized specification.

    Snapshots are append-only: a new version is stored for every material
    change and an existing version is never rewritten.
    """
    id: str = Field(..., description="Owning session id")
    version: int = Field(0, ge=0)
    plain_english_summary: PlainEnglishSummary = Field(default_factory=PlainEnglishSummary)
    formal_prd: FormalPRD = Field(default_factory=FormalPRD, alias="formalPRD")
    last_updated: datetime = Field(default_factory=utcnow)

    @classmethod
    def empty(cls, session_id: str, last_updated: Optional[datetime] = None) -> "Specification":
        """Zero-value version 0 document for a new session."""
        return cls(
            id=session_id,
            version=0,
            last_updated=last_updated or utcnow(),
        )

    def body(self) -> dict:
        """The document content, excluding identity and bookkeeping fields."""
        return {
            "plainEnglishSummary": self.plain_english_summary.to_wire(),
            "formalPRD": self.formal_prd.to_wire(),
        }

    def same_content(self, other: "Specification") -> bool:
        return self.body() == other.body()


class CompletenessState(CamelModel):
    """Derived readiness signal; always recomputed from synthesis output."""
    missing_sections: List[str] = Field(default_factory=lambda: list(REQUIRED_SECTIONS))
    ready_for_handoff: bool = False
    last_evaluated: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_missing(cls, missing_sections: List[str]) -> "CompletenessState":
        return cls(
            missing_sections=list(missing_sections),
            ready_for_handoff=not missing_sections,
        )


class LockedSection(CamelModel):
    """A section marked as decided. Advisory only; not enforced by storage."""
    name: str = Field(..., description="e.g. 'Target Users', 'Scope'")
    summary: str = Field(..., description="What was locked in")
    locked_at: datetime = Field(default_factory=utcnow)
