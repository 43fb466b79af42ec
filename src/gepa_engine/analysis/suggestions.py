"""Parsing, deduplication and ranking of reflection suggestions."""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from ..errors import ReflectionFailed
from ..models import MutationOperator, ReflectionSuggestion, SuggestionCategory
from ..similarity import text_similarity

TEXT_FALLBACK_CONFIDENCE = 0.3
DEFAULT_CONFIDENCE = 0.5

CATEGORY_ALIASES: Dict[str, SuggestionCategory] = {
    "clarification": SuggestionCategory.CLARIFICATION,
    "clarity": SuggestionCategory.CLARIFICATION,
    "clarify": SuggestionCategory.CLARIFICATION,
    "constraint": SuggestionCategory.CONSTRAINT,
    "constraints": SuggestionCategory.CONSTRAINT,
    "example": SuggestionCategory.EXAMPLE,
    "examples": SuggestionCategory.EXAMPLE,
    "structure": SuggestionCategory.STRUCTURE,
    "format": SuggestionCategory.STRUCTURE,
    "formatting": SuggestionCategory.STRUCTURE,
    "reasoning": SuggestionCategory.STRUCTURE,
}

OPERATION_ALIASES: Dict[str, MutationOperator] = {
    "edit": MutationOperator.EDIT,
    "modify": MutationOperator.EDIT,
    "rewrite": MutationOperator.EDIT,
    "add": MutationOperator.ADD,
    "insert": MutationOperator.ADD,
    "delete": MutationOperator.DELETE,
    "remove": MutationOperator.DELETE,
    "replace": MutationOperator.REPLACE,
    "restructure": MutationOperator.REPLACE,
}

CONFIDENCE_WORDS = {"high": 0.9, "medium": 0.6, "low": 0.3}

FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
LIST_ITEM = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+)$")

TEXT_CATEGORY_KEYWORDS = (
    (SuggestionCategory.EXAMPLE, ("example", "e.g.", "for instance", "such as")),
    (SuggestionCategory.CONSTRAINT, ("must", "never", "always", "do not", "don't", "avoid", "only")),
    (SuggestionCategory.STRUCTURE, ("format", "structure", "section", "order", "step by step", "reorganize")),
)


def _load_json(text: str) -> Optional[Any]:
    """Extract the first JSON document from an LLM response."""
    candidates = [text.strip()]
    candidates.extend(m.strip() for m in FENCED_JSON.findall(text))
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if 0 <= start < end:
            candidates.append(text[start:end + 1])
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def _confidence(value: Any) -> float:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in CONFIDENCE_WORDS:
            return CONFIDENCE_WORDS[lowered]
        try:
            value = float(lowered)
        except ValueError:
            return DEFAULT_CONFIDENCE
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return min(1.0, max(0.0, float(value)))
    return DEFAULT_CONFIDENCE


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _from_item(
    item: Any,
    target_candidate_id: str,
    source_confidence: float,
) -> Optional[ReflectionSuggestion]:
    """Convert one JSON item; returns None for malformed items."""
    if not isinstance(item, dict):
        return None
    category = CATEGORY_ALIASES.get(str(item.get("category", "")).strip().lower())
    rationale = _optional_text(item.get("rationale") or item.get("description") or item.get("reason"))
    if category is None or rationale is None:
        return None
    operation = OPERATION_ALIASES.get(str(item.get("operation") or item.get("type") or "").strip().lower())
    try:
        return ReflectionSuggestion(
            category=category,
            rationale=rationale,
            confidence=_confidence(item.get("confidence", item.get("priority"))),
            target_candidate_id=target_candidate_id,
            operation=operation,
            target_text=_optional_text(item.get("target_text") or item.get("target")),
            proposed_text=_optional_text(item.get("proposed_text") or item.get("text")),
            source_confidence=source_confidence,
        )
    except ValidationError:
        return None


def _from_text(text: str, target_candidate_id: str, source_confidence: float) -> List[ReflectionSuggestion]:
    """Low-confidence suggestions from bullet or numbered lines."""
    suggestions = []
    for line in text.splitlines():
        match = LIST_ITEM.match(line)
        if not match:
            continue
        rationale = match.group(1).strip()
        if len(rationale) < 3:
            continue
        lowered = rationale.lower()
        category = next(
            (cat for cat, words in TEXT_CATEGORY_KEYWORDS if any(w in lowered for w in words)),
            SuggestionCategory.CLARIFICATION,
        )
        suggestions.append(ReflectionSuggestion(
            category=category,
            rationale=rationale,
            confidence=TEXT_FALLBACK_CONFIDENCE,
            target_candidate_id=target_candidate_id,
            source_confidence=source_confidence,
        ))
    return suggestions


def parse_suggestions(
    response: str,
    target_candidate_id: str,
    source_confidence: float = 1.0,
) -> List[ReflectionSuggestion]:
    """Parse an LLM reflection response into suggestions.

    Structured JSON is preferred; plain bullet lists are accepted at low
    confidence. Raises ReflectionFailed when nothing usable is found.
    """
    data = _load_json(response)
    suggestions: List[ReflectionSuggestion] = []
    if data is not None:
        items = data.get("suggestions", [data]) if isinstance(data, dict) else data
        if isinstance(items, list):
            parsed = [_from_item(item, target_candidate_id, source_confidence) for item in items]
            rejected = sum(1 for s in parsed if s is None)
            if rejected:
                logger.debug(f"Rejected {rejected} malformed suggestions")
            suggestions = [s for s in parsed if s is not None]

    if not suggestions:
        suggestions = _from_text(response, target_candidate_id, source_confidence)

    if not suggestions:
        raise ReflectionFailed(target_candidate_id, "no valid suggestions in response")
    return suggestions


def _same_suggestion(a: ReflectionSuggestion, b: ReflectionSuggestion, threshold: float) -> bool:
    if a.category != b.category:
        return False
    if a.proposed_text and b.proposed_text:
        return text_similarity(a.proposed_text, b.proposed_text) >= threshold
    return text_similarity(a.rationale, b.rationale) >= threshold


def dedupe_suggestions(
    suggestions: Sequence[ReflectionSuggestion],
    threshold: float = 0.85,
) -> List[ReflectionSuggestion]:
    """Merge near-duplicate suggestions, keeping the most confident one."""
    merged: List[ReflectionSuggestion] = []
    for suggestion in suggestions:
        for i, kept in enumerate(merged):
            if _same_suggestion(kept, suggestion, threshold):
                best = suggestion if suggestion.rank_score > kept.rank_score else kept
                merged[i] = best.model_copy(update={"support": kept.support + suggestion.support})
                break
        else:
            merged.append(suggestion)
    return merged


def rank_suggestions(suggestions: Sequence[ReflectionSuggestion]) -> List[ReflectionSuggestion]:
    """Order by confidence, specificity and support; stable for ties."""
    return sorted(suggestions, key=lambda s: -s.rank_score)
