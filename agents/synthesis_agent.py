"""Specification Synthesis Agent - The Scribe.

Turns (current specification, new conversation turns) into an updated full
specification plus the list of sections that are still missing, or polishes a
specification for handoff in finalize mode.

The agent never persists anything and never blocks the chat: an unusable
model response degrades to "specification unchanged".
"""

import json
import logging
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from agents.base_agent import BaseAgent, parse_json_response
from agents.completeness import empty_sections, merge_sections, normalise_sections
from config import settings
from contracts import (
    MINIMUM_SECTIONS,
    REQUIRED_SECTIONS,
    FinalizeInput,
    Message,
    Specification,
    SynthesisInput,
    SynthesisOutput,
    SynthesisPayload,
    UpdateInput,
    utcnow,
)
from providers import LLMProvider

logger = logging.getLogger(__name__)

_INPUT_ADAPTER = TypeAdapter(SynthesisInput)


RESPONSE_STRUCTURE = """{
  "spec": {
    "plainEnglishSummary": {
      "overview": "1-2 sentence elevator pitch describing what the product does and who it's for",
      "targetUsers": "clear description of who will use this",
      "keyFeatures": ["feature 1", "feature 2", "feature 3"],
      "flows": ["user workflow 1: describe key user journey", "workflow 2"],
      "rulesAndConstraints": ["business rule 1", "constraint 1"],
      "nonFunctional": ["performance expectation", "reliability need"],
      "mvpDefinition": {
        "included": ["core feature 1 for v1", "core feature 2"],
        "excluded": ["future feature 1", "nice-to-have 1"]
      }
    },
    "formalPRD": {
      "introduction": "professional introduction paragraph for the PRD",
      "glossary": {"term": "definition"},
      "requirements": [
        {
          "id": "req-1",
          "userStory": "As a [user], I want [goal], so that [benefit]",
          "acceptanceCriteria": ["WHEN [trigger] THEN THE System SHALL [response]"],
          "priority": "must-have"
        }
      ],
      "nonFunctionalRequirements": [
        {
          "id": "nfr-1",
          "category": "Performance",
          "description": "THE System SHALL [requirement]"
        }
      ]
    }
  },
  "missingSections": ["flows"]
}"""


class SpecSynthesisAgent(BaseAgent):
    """The Scribe - keeps the specification in step with the conversation.

    This agent:
    1. Builds an update or finalize prompt around the current specification
    2. Asks the model for the COMPLETE specification (never a diff)
    3. Strips code fences and parses the JSON it gets back
    4. Falls back to the unchanged specification when parsing fails
    5. Bumps the version only when the document actually changed
    """

    UPDATE_PROMPT = """You are updating a product specification based on new conversation.

{first_run_note}CURRENT SPECIFICATION (JSON):
{current_spec}

NEW MESSAGES:
{messages}

RULES:
1. Return the COMPLETE Specification object (not partial patches)
2. Only change sections affected by the new messages
3. Copy unchanged sections through exactly as they are
4. ADD to list sections (features, flows, rules, requirements) - don't replace entire lists
5. List in missingSections every section that is still empty or too vague to build from, choosing from: {required_sections}

CRITICAL - HANDLING USER CORRECTIONS:
- An addition ("also", "and", "we'll need") extends a list section
- A correction ("change X to Y", "not X, Y", "actually, make it Y instead") REPLACES the affected field
- "Let's not limit it to dads, make it all parents" -> targetUsers becomes "Parents" (not "Dads")
- "Actually, make it for teachers" -> targetUsers becomes "Teachers"
- "Change the name to ..." -> update the overview
- When the user corrects themselves, the new information REPLACES the old, it is never added alongside it

IMPORTANT:
- Write the overview as a polished elevator pitch, not raw conversation text
- Extract real features from the conversation, not placeholders
- Be specific and concrete
- Use UK English
- Only include information actually discussed

Return JSON with this exact structure:
{structure}"""

    FIRST_RUN_NOTE = """This is the first synthesis for this conversation: the current specification is empty.
Build every section you can from the new messages.

"""

    FINALIZE_PROMPT = """You are finalising a product specification for handoff to a development team.

CURRENT SPECIFICATION (JSON):
{current_spec}

TASK:
- Tighten wording where needed
- Ensure structure is clear and complete
- Do not invent new features, users, rules or requirements
- Do not introduce any fact that is not already in the specification
- Return the COMPLETE Specification object

Return JSON with this exact structure, with an empty missingSections list:
{structure}"""

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        verify_missing_sections: Optional[bool] = None,
    ):
        """Initialize the Synthesis Agent.

        Args:
            provider: LLM provider (defaults to LiteLLM on settings.synthesis_model)
            model: Model name or router group override
            temperature: Defaults to settings.synthesis_temperature
            max_tokens: Defaults to settings.synthesis_max_tokens
            verify_missing_sections: Also report sections that are empty in the
                returned document, on top of what the model reported
        """
        super().__init__(
            role="synthesis",
            provider=provider,
            model=model or settings.synthesis_model,
            temperature=settings.synthesis_temperature if temperature is None else temperature,
            max_tokens=max_tokens or settings.synthesis_max_tokens,
        )
        self.verify_missing_sections = (
            settings.verify_missing_sections
            if verify_missing_sections is None
            else verify_missing_sections
        )

    def get_task_description(self) -> str:
        return "Synthesize the product specification from conversation"

    def synthesize(self, synthesis_input: SynthesisInput) -> SynthesisOutput:
        """Run one synthesis pass.

        Args:
            synthesis_input: UpdateInput or FinalizeInput (or the equivalent dict)

        Returns:
            SynthesisOutput with the full specification and missing sections

        Raises:
            Exception: Whatever the provider raises once its retries are exhausted
        """
        if isinstance(synthesis_input, dict):
            synthesis_input = _INPUT_ADAPTER.validate_python(synthesis_input)

        if isinstance(synthesis_input, UpdateInput):
            prompt = self.build_update_prompt(synthesis_input)
            logger.info(
                "Synthesis mode=update first_run=%s new_messages=%d",
                synthesis_input.is_first_run,
                len(synthesis_input.last_messages),
            )
        elif isinstance(synthesis_input, FinalizeInput):
            prompt = self.build_finalize_prompt(synthesis_input)
            logger.info("Synthesis mode=finalize version=%d", synthesis_input.current_spec.version)
        else:
            raise ValueError(f"Unknown synthesis input: {type(synthesis_input).__name__}")

        response = self._complete([{"role": "user", "content": prompt}])
        logger.info("Synthesis response length: %d chars", len(response.content))

        return self._handle_response(synthesis_input, response.content)

    def update(
        self,
        current_spec: Specification,
        last_messages: List[Message],
        is_first_run: bool = False,
    ) -> SynthesisOutput:
        """Convenience method for an update pass."""
        return self.synthesize(UpdateInput(
            current_spec=current_spec,
            last_messages=last_messages,
            is_first_run=is_first_run,
        ))

    def finalize(self, current_spec: Specification) -> SynthesisOutput:
        """Convenience method for a finalize pass."""
        return self.synthesize(FinalizeInput(current_spec=current_spec))

    def build_update_prompt(self, synthesis_input: UpdateInput) -> str:
        messages_text = "\n\n".join(
            f"{m.role.value.upper()}: {m.content}" for m in synthesis_input.last_messages
        )
        return self.UPDATE_PROMPT.format(
            first_run_note=self.FIRST_RUN_NOTE if synthesis_input.is_first_run else "",
            current_spec=json.dumps(synthesis_input.current_spec.body(), indent=2),
            messages=messages_text or "(none)",
            required_sections=", ".join(REQUIRED_SECTIONS),
            structure=RESPONSE_STRUCTURE,
        )

    def build_finalize_prompt(self, synthesis_input: FinalizeInput) -> str:
        return self.FINALIZE_PROMPT.format(
            current_spec=json.dumps(synthesis_input.current_spec.body(), indent=2),
            structure=RESPONSE_STRUCTURE,
        )

    def _handle_response(self, synthesis_input: SynthesisInput, content: str) -> SynthesisOutput:
        current = synthesis_input.current_spec
        try:
            payload = SynthesisPayload.model_validate(parse_json_response(content))
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning("Synthesis response unusable, keeping specification v%d: %s", current.version, e)
            if isinstance(synthesis_input, FinalizeInput):
                return SynthesisOutput(spec=current, missing_sections=[])
            return SynthesisOutput(spec=current, missing_sections=list(MINIMUM_SECTIONS))

        candidate = current.model_copy(update={
            "plain_english_summary": payload.spec.plain_english_summary,
            "formal_prd": payload.spec.formal_prd,
        })
        if candidate.same_content(current):
            spec = current
        else:
            spec = candidate.model_copy(update={
                "version": current.version + 1,
                "last_updated": utcnow(),
            })

        if isinstance(synthesis_input, FinalizeInput):
            missing: List[str] = []
        else:
            missing = normalise_sections(payload.missing_sections)
            if self.verify_missing_sections:
                missing = merge_sections(missing, empty_sections(spec))

        logger.info(
            "Synthesis parsed: v%d -> v%d, missing sections: %s",
            current.version,
            spec.version,
            ", ".join(missing) or "none",
        )
        return SynthesisOutput(spec=spec, missing_sections=missing)
