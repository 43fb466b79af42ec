"""Prompt crossover by recombining typed blocks of two parents."""

import random
from typing import Dict, List, Optional

from loguru import logger

from ..models import Lineage, MutationOperator, PromptCandidate
from ..similarity import text_similarity
from .segments import Block, BlockType, SegmentedPrompt, segment_prompt

DUPLICATE_BLOCK_SIMILARITY = 0.9
UNIQUE_BLOCK_PROBABILITY = 0.5


def _group(blocks: List[Block]) -> Dict[BlockType, List[Block]]:
    groups: Dict[BlockType, List[Block]] = {}
    for block in blocks:
        groups.setdefault(block.type, []).append(block)
    return groups


class PromptCrossover:
    """Generate hybrid prompts by combining compatible blocks of two parents."""

    def compatible(self, prompt_a: str, prompt_b: str) -> bool:
        """Parents are compatible when they share at least one block type."""
        types_a = {b.type for b in segment_prompt(prompt_a).blocks}
        types_b = {b.type for b in segment_prompt(prompt_b).blocks}
        return bool(types_a & types_b)

    def crossover_prompts(self, prompt_a: str, prompt_b: str, rng: random.Random) -> Optional[str]:
        """Child text following parent A's layout; None when incompatible."""
        seg_a = segment_prompt(prompt_a)
        seg_b = segment_prompt(prompt_b)
        groups_a = _group(seg_a.blocks)
        groups_b = _group(seg_b.blocks)
        if not set(groups_a) & set(groups_b):
            return None

        # per shared type, inherit the whole group from one parent
        donor = {
            block_type: groups_b[block_type] if rng.random() < 0.5 else groups_a[block_type]
            for block_type in groups_a
            if block_type in groups_b
        }

        child: List[Block] = []
        emitted = set()
        for block in seg_a.blocks:
            if block.type not in donor:
                child.append(block)
            elif block.type not in emitted:
                child.extend(donor[block.type])
                emitted.add(block.type)

        for block in seg_b.blocks:
            if block.type not in groups_a and rng.random() < UNIQUE_BLOCK_PROBABILITY:
                child.append(block)

        deduped: List[Block] = []
        for block in child:
            if any(text_similarity(block.text, kept.text) >= DUPLICATE_BLOCK_SIMILARITY for kept in deduped):
                continue
            deduped.append(block)

        return SegmentedPrompt(deduped, seg_a.separator).render()

    def crossover(
        self,
        parent_a: PromptCandidate,
        parent_b: PromptCandidate,
        rng_seed: int,
        generation: int,
    ) -> Optional[PromptCandidate]:
        """Recombine two parents into one offspring."""
        rng = random.Random(rng_seed)
        text = self.crossover_prompts(parent_a.text, parent_b.text, rng)
        if text is None:
            logger.debug(f"Crossover skipped: {parent_a.id} and {parent_b.id} share no block types")
            return None
        if not text.strip():
            return None
        logger.debug(f"Crossover prompt ({len(text)} chars)")
        return PromptCandidate(
            text=text,
            generation=generation,
            lineage=Lineage(
                parent_ids=(parent_a.id, parent_b.id),
                operators=(MutationOperator.CROSSOVER,),
                notes="block crossover",
            ),
        )
