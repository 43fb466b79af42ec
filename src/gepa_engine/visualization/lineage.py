"""File-based visualizer that saves PNG snapshots of the candidate lineage tree."""

import shutil
import time
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from loguru import logger

from ..models import MutationOperator, PromptCandidate

DEFAULT_UPDATE_INTERVAL = 60.0
HIGH_FITNESS = 0.8
MEDIUM_FITNESS = 0.6
FINAL_FILENAME = "final.png"


class LineageVisualizer:
    """Tracks candidate lineage and renders it with networkx and matplotlib.

    Plotting libraries are imported only when a plot is rendered, so the
    ``viz`` extra is needed only when a visualizer is used.
    """

    def __init__(
        self,
        title: str = "GEPA Evolution Tree",
        output_dir: str = "plots",
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
    ):
        """Initialize visualizer with output directory and throttling."""
        self.title = title
        self.output_dir = Path(output_dir)
        self.update_interval = update_interval
        self.candidates: Dict[str, PromptCandidate] = {}
        self.edges: List[Tuple[str, str]] = []
        self.generation_candidates: Dict[int, List[str]] = {}
        self.best_fitness_per_gen: Dict[int, float] = {}
        self.running = False
        self._last_update = 0.0
        self._plot_count = 0

    def start(self) -> None:
        """Start visualization and create output directory."""
        if self.running:
            return
        self.running = True
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._last_update = time.time()
        logger.info(f"LineageVisualizer started. Output: {self.output_dir}")

    def add_candidate(self, candidate: PromptCandidate) -> None:
        """Add or refresh a candidate node and its parent edges."""
        is_new = candidate.id not in self.candidates
        self.candidates[candidate.id] = candidate
        if not is_new:
            return
        for parent_id in candidate.lineage.parent_ids:
            if parent_id in self.candidates:
                self.edges.append((parent_id, candidate.id))
        self.generation_candidates.setdefault(candidate.generation, []).append(candidate.id)

    def update_generation(self, generation: int, population: List[PromptCandidate]) -> None:
        """Record a generation's evaluated members and refresh the plot."""
        for candidate in population:
            self.add_candidate(candidate)
        scored = [c.fitness for c in population if c.evaluated]
        if scored:
            self.best_fitness_per_gen[generation] = max(scored)
        logger.info(
            f"Generation {generation} complete. "
            f"Candidates: {len(self.candidates)}, Best: {max(scored, default=0.0):.1%}"
        )
        self._update_plot()

    def show_final(self, pareto_frontier: List[PromptCandidate]) -> None:
        """Save final plot with Pareto frontier highlighted and copy as final.png."""
        for candidate in pareto_frontier:
            self.add_candidate(candidate)
        self._last_update = 0
        self._update_plot(highlight_ids={c.id for c in pareto_frontier})

        if self._plot_count > 0:
            last_file = self._plot_path(self._plot_count)
            final_file = self.output_dir / FINAL_FILENAME
            if last_file.exists():
                shutil.copy(last_file, final_file)
                logger.info(f"Saved final visualization: {final_file}")

    def _plot_path(self, index: int) -> Path:
        return self.output_dir / f"evolution_{index:03d}.png"

    def _update_plot(self, highlight_ids: Optional[Set[str]] = None) -> None:
        """Render lineage tree to PNG with throttling."""
        if not self.running or not self.candidates:
            return
        now = time.time()
        if (now - self._last_update) < self.update_interval:
            return
        self._last_update = now
        self._plot_count += 1
        self._render_to_file(highlight_ids)

    def _layout(self) -> Dict[str, Tuple[float, float]]:
        pos = {}
        max_gen = max(self.generation_candidates) if self.generation_candidates else 0
        for gen, candidate_ids in self.generation_candidates.items():
            num = len(candidate_ids)
            y = 1.0 - (gen / max(max_gen, 1))
            for i, cid in enumerate(candidate_ids):
                x = 0.5 if num == 1 else 0.1 + (i / (num - 1)) * 0.8
                pos[cid] = (x, y)
        return pos

    def _color(self, candidate: PromptCandidate, highlight_ids: Optional[Set[str]]) -> str:
        if highlight_ids and candidate.id in highlight_ids:
            return "#9b59b6"
        if MutationOperator.SEED in candidate.lineage.operators:
            return "#3498db"
        if not candidate.evaluated:
            return "#bdc3c7"
        if candidate.fitness >= HIGH_FITNESS:
            return "#2ecc71"
        if candidate.fitness >= MEDIUM_FITNESS:
            return "#f39c12"
        return "#e74c3c"

    def _render_to_file(self, highlight_ids: Optional[Set[str]] = None) -> None:
        """Render the lineage graph to a PNG file."""
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
        import networkx as nx
        from matplotlib.patches import Patch

        graph = nx.DiGraph()
        for cid, candidate in self.candidates.items():
            graph.add_node(cid, generation=candidate.generation)
        graph.add_edges_from(self.edges)

        fig, ax = plt.subplots(figsize=(14, 10))
        pos = self._layout()
        nodes = list(graph.nodes())
        seeds = {c.id for c in self.candidates.values() if MutationOperator.SEED in c.lineage.operators}

        nx.draw_networkx_nodes(
            graph, pos, nodelist=nodes,
            node_color=[self._color(self.candidates[n], highlight_ids) for n in nodes],
            node_size=[1000 if n in seeds else 600 for n in nodes],
            ax=ax, alpha=0.9
        )
        nx.draw_networkx_edges(
            graph, pos, edge_color="#95a5a6",
            arrows=True, arrowsize=15, width=2, ax=ax, alpha=0.6
        )
        labels = {
            n: f"G{self.candidates[n].generation}\n{self.candidates[n].fitness:.1%}"
            for n in nodes
        }
        nx.draw_networkx_labels(graph, pos, labels, font_size=8, font_weight="bold", ax=ax)

        best = max(self.best_fitness_per_gen.values()) if self.best_fitness_per_gen else 0
        ax.set_title(
            f"{self.title}\n"
            f"Generations: {len(self.generation_candidates)} | "
            f"Candidates: {len(self.candidates)} | "
            f"Best Fitness: {best:.1%}",
            fontsize=14, fontweight="bold", pad=20
        )
        legend_elements = [
            Patch(facecolor="#3498db", label="Seed"),
            Patch(facecolor="#2ecc71", label="Fitness >= 80%"),
            Patch(facecolor="#f39c12", label="Fitness 60-80%"),
            Patch(facecolor="#e74c3c", label="Fitness < 60%"),
            Patch(facecolor="#bdc3c7", label="Unevaluated"),
        ]
        if highlight_ids:
            legend_elements.append(Patch(facecolor="#9b59b6", label="Pareto Frontier"))
        ax.legend(handles=legend_elements, loc="upper left", fontsize=9, framealpha=0.9)
        ax.axis("off")
        ax.set_xlim(-0.05, 1.05)
        ax.set_ylim(-0.05, 1.05)
        plt.tight_layout()

        filename = self._plot_path(self._plot_count)
        fig.savefig(filename, dpi=150)
        plt.close(fig)
        logger.info(f"Saved evolution plot: {filename}")
