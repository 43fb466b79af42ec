"""Prompt mutation by applying reflection suggestions as text operations."""

import random
import re
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from ..models import (
    Lineage,
    MutationOperator,
    PromptCandidate,
    ReflectionSuggestion,
    SuggestionCategory,
)
from ..similarity import text_similarity
from .segments import Block, BlockType, SegmentedPrompt, classify, segment_prompt

LOCATE_SIMILARITY = 0.6
DUPLICATE_SIMILARITY = 0.9
EMPHASIS_PREFIX = "Important: "
MIN_BLOCKS_FOR_DELETE = 3
MAX_GENERIC_OPERATORS = 3

GENERIC_INSTRUCTIONS = (
    "Think through the problem step by step before answering.",
    "Verify your answer against the task requirements before responding.",
    "Be concise and answer only what is asked.",
    "If the input is ambiguous, state your assumption explicitly.",
    "Follow the requested output format exactly.",
    "Double-check edge cases before giving the final answer.",
)

DEFAULT_OPERATIONS = {
    SuggestionCategory.CLARIFICATION: MutationOperator.EDIT,
    SuggestionCategory.CONSTRAINT: MutationOperator.ADD,
    SuggestionCategory.EXAMPLE: MutationOperator.ADD,
    SuggestionCategory.STRUCTURE: MutationOperator.REPLACE,
}

Applied = Tuple[str, MutationOperator]


def _as_instruction(text: str) -> str:
    text = text.strip()
    if text and text[-1] not in ".!?:":
        text += "."
    return text


class PromptMutator:
    """Generates offspring prompts from a parent and its suggestions."""

    def __init__(self, max_suggestions_per_parent: int = 3):
        """Initialize mutator with the per-parent suggestion limit."""
        self.max_suggestions_per_parent = max_suggestions_per_parent

    def mutate(
        self,
        candidate: PromptCandidate,
        suggestions: Sequence[ReflectionSuggestion],
        rng_seed: int,
        generation: int,
        mutation_rate: float = 0.0,
    ) -> List[PromptCandidate]:
        """Produce at least one offspring; generic operators fill in without suggestions."""
        rng = random.Random(rng_seed)
        offspring: List[PromptCandidate] = []
        seen = {candidate.text}

        for suggestion in list(suggestions)[:self.max_suggestions_per_parent]:
            applied = self.apply_suggestion(candidate.text, suggestion)
            if applied is None:
                logger.debug(f"Suggestion not applicable to {candidate.id}: {suggestion.rationale[:60]}")
                continue
            text, operator = applied
            operators = [operator]
            notes = [f"{suggestion.category.value}: {suggestion.rationale}"]
            if rng.random() < mutation_rate:
                text, extra, note = self.generic_mutation(text, rng)
                operators.append(extra)
                notes.append(note)
            if text in seen:
                continue
            seen.add(text)
            offspring.append(self._child(candidate, text, operators, notes, generation))

        if not offspring:
            offspring.append(self._generic_child(candidate, rng, generation, mutation_rate))

        logger.debug(f"Mutated {candidate.id}: {len(offspring)} offspring")
        return offspring

    def _generic_child(
        self,
        candidate: PromptCandidate,
        rng: random.Random,
        generation: int,
        mutation_rate: float,
    ) -> PromptCandidate:
        """One generic operator, with further ones stacked at the mutation rate."""
        text, operator, note = self.generic_mutation(candidate.text, rng)
        operators, notes = [operator], [note]
        while len(operators) < MAX_GENERIC_OPERATORS and rng.random() < mutation_rate:
            stacked, extra, extra_note = self.generic_mutation(text, rng)
            if stacked == candidate.text:
                break
            text = stacked
            operators.append(extra)
            notes.append(extra_note)
        return self._child(candidate, text, operators, notes, generation)

    def perturb(self, candidate: PromptCandidate, rng_seed: int) -> PromptCandidate:
        """Stack one more generic operator on an offspring."""
        rng = random.Random(rng_seed)
        text, operator, note = self.generic_mutation(candidate.text, rng)
        lineage = candidate.lineage
        notes = f"{lineage.notes}; {note}" if lineage.notes else note
        return PromptCandidate(
            text=text,
            generation=candidate.generation,
            lineage=Lineage(
                parent_ids=lineage.parent_ids,
                operators=lineage.operators + (operator,),
                notes=notes,
            ),
        )

    def _child(
        self,
        parent: PromptCandidate,
        text: str,
        operators: List[MutationOperator],
        notes: List[str],
        generation: int,
    ) -> PromptCandidate:
        return PromptCandidate(
            text=text,
            generation=generation,
            lineage=Lineage(
                parent_ids=(parent.id,),
                operators=tuple(operators),
                notes="; ".join(notes),
            ),
        )

    def apply_suggestion(self, text: str, suggestion: ReflectionSuggestion) -> Optional[Applied]:
        """Apply one suggestion; None when it does not change the prompt."""
        operator = suggestion.operation or DEFAULT_OPERATIONS[suggestion.category]
        segmented = segment_prompt(text)
        instruction = _as_instruction(suggestion.proposed_text or suggestion.rationale)

        if operator == MutationOperator.EDIT:
            result = self._edit(text, segmented, suggestion, instruction)
        elif operator == MutationOperator.ADD:
            result = self._add(segmented, suggestion, instruction)
        elif operator == MutationOperator.DELETE:
            result = self._delete(text, segmented, suggestion)
        elif operator == MutationOperator.REPLACE:
            result = self._replace(text, segmented, suggestion)
        else:
            result = None

        if result is None:
            return None
        new_text, applied_operator = result
        new_text = new_text.strip()
        if not new_text or new_text == text.strip():
            return None
        return new_text, applied_operator

    def _locate(self, segmented: SegmentedPrompt, target: Optional[str]) -> Optional[int]:
        """Index of the block containing or resembling target."""
        if not target or not segmented.blocks:
            return None
        lowered = target.lower()
        for i, block in enumerate(segmented.blocks):
            if lowered in block.text.lower():
                return i
        scores = [text_similarity(target, b.text) for b in segmented.blocks]
        best = max(range(len(scores)), key=lambda i: scores[i])
        return best if scores[best] >= LOCATE_SIMILARITY else None

    def _edit(
        self,
        text: str,
        segmented: SegmentedPrompt,
        suggestion: ReflectionSuggestion,
        instruction: str,
    ) -> Optional[Applied]:
        target = suggestion.target_text
        if target and suggestion.proposed_text and target in text:
            return text.replace(target, suggestion.proposed_text, 1), MutationOperator.EDIT
        index = self._locate(segmented, target or suggestion.rationale)
        if index is None:
            return self._add(segmented, suggestion, instruction)
        block = segmented.blocks[index]
        if text_similarity(instruction, block.text) >= DUPLICATE_SIMILARITY:
            return None
        blocks = list(segmented.blocks)
        blocks[index] = Block(block.type, f"{block.text} {instruction}")
        return SegmentedPrompt(blocks, segmented.separator).render(), MutationOperator.EDIT

    def _add(
        self,
        segmented: SegmentedPrompt,
        suggestion: ReflectionSuggestion,
        instruction: str,
    ) -> Optional[Applied]:
        blocks = list(segmented.blocks)
        if any(text_similarity(instruction, b.text) >= DUPLICATE_SIMILARITY for b in blocks):
            return None
        new_block = Block(classify(instruction), instruction)

        index = self._locate(segmented, suggestion.target_text)
        if index is not None:
            position = index + 1
        elif suggestion.category == SuggestionCategory.CONSTRAINT:
            constraint_positions = [i for i, b in enumerate(blocks) if b.type == BlockType.CONSTRAINT]
            position = constraint_positions[-1] + 1 if constraint_positions else len(blocks)
        elif suggestion.category == SuggestionCategory.CLARIFICATION and blocks:
            position = 1
        else:
            position = len(blocks)

        blocks.insert(position, new_block)
        return SegmentedPrompt(blocks, segmented.separator).render(), MutationOperator.ADD

    def _delete(
        self,
        text: str,
        segmented: SegmentedPrompt,
        suggestion: ReflectionSuggestion,
    ) -> Optional[Applied]:
        target = suggestion.target_text
        index = self._locate(segmented, target)
        if index is None:
            return None
        block = segmented.blocks[index]
        if target and target in block.text and target.strip() != block.text.strip():
            remaining = text.replace(target, "", 1)
            return re.sub(r"[ \t]{2,}", " ", remaining), MutationOperator.DELETE
        if len(segmented.blocks) < 2:
            return None
        blocks = [b for i, b in enumerate(segmented.blocks) if i != index]
        return SegmentedPrompt(blocks, segmented.separator).render(), MutationOperator.DELETE

    def _replace(
        self,
        text: str,
        segmented: SegmentedPrompt,
        suggestion: ReflectionSuggestion,
    ) -> Optional[Applied]:
        blocks = list(segmented.blocks)
        index = self._locate(segmented, suggestion.target_text)
        proposed = suggestion.proposed_text

        if proposed:
            if index is None:
                return self._add(segmented, suggestion, _as_instruction(proposed))
            target = suggestion.target_text
            if target and target in text:
                return text.replace(target, proposed, 1), MutationOperator.REPLACE
            blocks[index] = Block(classify(proposed), proposed)
            return SegmentedPrompt(blocks, segmented.separator).render(), MutationOperator.REPLACE

        # restructure: move the targeted (or last) block to the front
        if len(blocks) < 2:
            return None
        index = index if index is not None else len(blocks) - 1
        if index == 0:
            return None
        blocks.insert(0, blocks.pop(index))
        return SegmentedPrompt(blocks, segmented.separator).render(), MutationOperator.REPLACE

    def generic_mutation(self, text: str, rng: random.Random) -> Tuple[str, MutationOperator, str]:
        """Random operator that always changes the prompt."""
        segmented = segment_prompt(text)
        blocks = list(segmented.blocks)
        options = []

        missing = [g for g in GENERIC_INSTRUCTIONS if g.lower() not in text.lower()]
        if missing:
            options.append("add")
        plain = [i for i, b in enumerate(blocks) if not b.text.startswith(EMPHASIS_PREFIX)]
        if plain:
            options.append("emphasize")
        if len(blocks) >= MIN_BLOCKS_FOR_DELETE:
            options.append("delete")
        if len({b.text for b in blocks}) >= 2:
            options.append("swap")

        choice = rng.choice(options) if options else "append"

        if choice == "add":
            instruction = rng.choice(missing)
            blocks.insert(rng.randint(0, len(blocks)), Block(classify(instruction), instruction))
            operator, note = MutationOperator.ADD, f"generic add: {instruction}"
        elif choice == "emphasize":
            index = rng.choice(plain)
            block = blocks[index]
            blocks[index] = Block(block.type, EMPHASIS_PREFIX + block.text)
            operator, note = MutationOperator.EDIT, f"generic emphasis on block {index}"
        elif choice == "delete":
            index = rng.randrange(len(blocks))
            del blocks[index]
            operator, note = MutationOperator.DELETE, f"generic delete of block {index}"
        elif choice == "swap":
            i = rng.randrange(len(blocks))
            j = rng.choice([k for k, b in enumerate(blocks) if b.text != blocks[i].text])
            blocks[i], blocks[j] = blocks[j], blocks[i]
            operator, note = MutationOperator.REPLACE, f"generic swap of blocks {i} and {j}"
        else:
            instruction = rng.choice(GENERIC_INSTRUCTIONS)
            blocks.append(Block(classify(instruction), instruction))
            operator, note = MutationOperator.ADD, f"generic add: {instruction}"

        return SegmentedPrompt(blocks, segmented.separator).render(), operator, note
