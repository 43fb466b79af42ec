"""Splitting prompts into typed blocks."""

import re
from enum import Enum
from typing import List, NamedTuple

PARAGRAPH_SEPARATOR = "\n\n"
LINE_SEPARATOR = "\n"
SENTENCE_SEPARATOR = " "
MIN_SEGMENT_LENGTH = 10

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

class BlockType(str, Enum):
    TASK = "task"
    INSTRUCTION = "instruction"
    CONSTRAINT = "constraint"
    EXAMPLE = "example"
    FORMATTING = "formatting"
    REASONING = "reasoning"
    OUTPUT = "output"


# checked in order; first match wins, INSTRUCTION otherwise
BLOCK_INDICATORS = (
    (BlockType.EXAMPLE, ("for example", "e.g.", "such as", "example:", "instance:", "like this", "input:", "output:")),
    (BlockType.TASK, ("task:", "problem:", "goal:", "objective:", "question:", "challenge:", "your job")),
    (BlockType.CONSTRAINT, ("must", "should", "required", "ensure", "don't", "do not", "avoid", "always", "never", "only use", "without")),
    (BlockType.REASONING, ("step by step", "think through", "reason about", "analyze", "consider", "break down", "work through")),
    (BlockType.FORMATTING, ("format", "structure", "organize", "present", "json", "xml", "markdown", "code block")),
    (BlockType.OUTPUT, ("output", "result", "answer", "response", "return", "provide")),
)


class Block(NamedTuple):
    type: BlockType
    text: str


class SegmentedPrompt(NamedTuple):
    blocks: List[Block]
    separator: str

    def render(self) -> str:
        return self.separator.join(b.text for b in self.blocks if b.text.strip())


def classify(text: str) -> BlockType:
    """Classify a block by indicator phrases."""
    lowered = text.lower()
    for block_type, indicators in BLOCK_INDICATORS:
        if any(indicator in lowered for indicator in indicators):
            return block_type
    return BlockType.INSTRUCTION


def _merge_short(parts: List[str], separator: str) -> List[str]:
    """Attach fragments shorter than MIN_SEGMENT_LENGTH to their neighbour."""
    merged: List[str] = []
    for part in parts:
        if merged and len(part) < MIN_SEGMENT_LENGTH:
            merged[-1] = f"{merged[-1]}{separator}{part}"
        elif merged and len(merged[-1]) < MIN_SEGMENT_LENGTH:
            merged[-1] = f"{merged[-1]}{separator}{part}"
        else:
            merged.append(part)
    return merged


def segment_prompt(text: str) -> SegmentedPrompt:
    """Split a prompt into paragraphs, list lines or sentences."""
    stripped = text.strip()
    if not stripped:
        return SegmentedPrompt([], PARAGRAPH_SEPARATOR)

    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", stripped) if p.strip()]
    if len(paragraphs) > 1:
        parts, separator = paragraphs, PARAGRAPH_SEPARATOR
    else:
        lines = [line.strip() for line in stripped.splitlines() if line.strip()]
        if len(lines) > 1:
            parts, separator = lines, LINE_SEPARATOR
        else:
            parts = [s.strip() for s in SENTENCE_SPLIT.split(stripped) if s.strip()]
            separator = SENTENCE_SEPARATOR

    parts = _merge_short(parts, separator)
    return SegmentedPrompt([Block(classify(p), p) for p in parts], separator)
