"""Completeness helpers: which canonical sections a specification still lacks."""

from typing import Iterable, List

from contracts import REQUIRED_SECTIONS, CompletenessState, Specification


def empty_sections(spec: Specification) -> List[str]:
    """Canonical sections whose field is empty in ``spec``, in canonical order."""
    summary = spec.plain_english_summary
    filled = {
        "overview": bool(summary.overview.strip()),
        "targetUsers": bool(summary.target_users.strip()),
        "keyFeatures": bool(summary.key_features),
        "flows": bool(summary.flows),
        "rulesAndConstraints": bool(summary.rules_and_constraints),
        "nonFunctional": bool(summary.non_functional),
        "mvpDefinition": not summary.mvp_definition.is_empty(),
    }
    return [name for name in REQUIRED_SECTIONS if not filled[name]]


def normalise_sections(sections: Iterable[str]) -> List[str]:
    """Trim and de-duplicate section names, keeping first-seen order."""
    seen: List[str] = []
    for name in sections:
        name = str(name).strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def merge_sections(reported: List[str], detected: List[str]) -> List[str]:
    """Union of model-reported and locally detected sections.

    Canonical names come first in canonical order, then anything else the
    model reported.
    """
    combined = set(reported) | set(detected)
    canonical = [name for name in REQUIRED_SECTIONS if name in combined]
    extra = [name for name in reported if name not in REQUIRED_SECTIONS]
    return canonical + extra


def evaluate_completeness(missing_sections: List[str]) -> CompletenessState:
    """Derive the readiness signal from a synthesis result."""
    return CompletenessState.from_missing(missing_sections)
