import random

import pytest

from gepa_engine.core.pareto import ParetoFrontierManager
from gepa_engine.core.selection import SelectionMechanism, sharing

from conftest import make_candidate


def _population(count, seed=0):
    rng = random.Random(seed)
    return [
        make_candidate(f"prompt {i}", objectives=[rng.random() for _ in range(4)])
        for i in range(count)
    ]


def test_sharing_function():
    assert sharing(0.0, 0.1, 1.0) == 1.0
    assert sharing(0.05, 0.1, 1.0) == pytest.approx(0.5)
    assert sharing(0.2, 0.1, 1.0) == 0.0


def test_select_never_exceeds_count_and_ids_are_unique():
    population = _population(12)
    frontier = ParetoFrontierManager().update_frontier(population)
    selection = SelectionMechanism(rng=random.Random(1))

    for count in (0, 1, 5, 12, 40):
        selected = selection.select(population, frontier, count)
        assert len(selected) <= count
        assert len({c.id for c in selected}) == len(selected)
    assert len(selection.select(population, frontier, 40)) == 12


def test_elites_come_first_and_are_front_zero():
    population = _population(15, seed=3)
    frontier = ParetoFrontierManager().update_frontier(population)
    selection = SelectionMechanism(elite_cap=2, rng=random.Random(0))

    selected = selection.select(population, frontier, 6)

    assert all(frontier.ranks[c.id] == 0 for c in selected[:2])


def test_tournament_prefers_lower_rank():
    strong = make_candidate("strong", objectives=(1.0, 1.0, 1.0, 1.0))
    weak = make_candidate("weak", objectives=(0.1, 0.1, 0.1, 0.1))
    frontier = ParetoFrontierManager().update_frontier([strong, weak])
    selection = SelectionMechanism(tournament_size=2, elite_cap=0, rng=random.Random(5))

    niche = selection.niche_counts([strong, weak])
    winners = {selection.tournament([strong, weak], frontier, niche).id for _ in range(10)}

    assert winners == {strong.id}


def test_niche_counts_include_self_and_crowded_neighbours():
    a = make_candidate("a", objectives=(0.5, 0.5, 0.5, 0.5))
    b = make_candidate("b", objectives=(0.5, 0.5, 0.5, 0.52))
    far = make_candidate("far", objectives=(0.0, 1.0, 0.0, 1.0))
    counts = SelectionMechanism(niche_radius=0.1).niche_counts([a, b, far])

    assert counts[far.id] == pytest.approx(1.0)
    assert counts[a.id] > 1.0


def test_unscored_candidates_are_never_selected():
    population = _population(4) + [make_candidate("pending")]
    frontier = ParetoFrontierManager().update_frontier(population)
    selected = SelectionMechanism(rng=random.Random(2)).select(population, frontier, 5)
    assert all(c.objectives is not None for c in selected)
    assert len(selected) == 4
