import json

import pytest
from pydantic import ValidationError

from gepa_engine.models import (
    ConvergenceSignal,
    EvaluationStatus,
    MutationOperator,
    OptimizationConfig,
    Population,
    PromptCandidate,
    ReflectionSuggestion,
    SuggestionCategory,
    load_task_cases,
    vector_dominates,
)

from conftest import make_candidate, make_result


def test_dominance_is_irreflexive_and_transitive():
    a, b, c = (0.9, 0.8, 0.7), (0.8, 0.8, 0.6), (0.7, 0.5, 0.6)
    assert not vector_dominates(a, a)
    assert vector_dominates(a, b)
    assert vector_dominates(b, c)
    assert vector_dominates(a, c)
    assert not vector_dominates(b, a)


def test_dominance_rejects_mismatched_lengths():
    with pytest.raises(ValueError):
        vector_dominates((1.0, 0.5), (1.0,))


def test_candidate_is_immutable_and_updates_by_copy():
    candidate = make_candidate("Solve it.")
    with pytest.raises(ValidationError):
        candidate.text = "changed"
    ranked = candidate.with_updates(pareto_rank=0)
    assert ranked.pareto_rank == 0
    assert candidate.pareto_rank is None
    assert ranked.id == candidate.id


def test_unevaluated_candidate_has_zero_fitness_and_never_dominates():
    scored = make_candidate(objectives=(1.0, 1.0, 1.0, 1.0), success_rate=1.0)
    pending = make_candidate()
    assert not pending.evaluated
    assert pending.fitness == 0.0
    assert not scored.dominates(pending)
    assert scored.fitness == 1.0


def test_evaluation_result_completed_statuses():
    assert make_result("c", EvaluationStatus.SUCCESS).completed
    assert make_result("c", EvaluationStatus.FAILED).completed
    assert not make_result("c", EvaluationStatus.TIMEOUT).completed
    assert not make_result("c", EvaluationStatus.CANCELLED).completed
    assert not make_result("c", EvaluationStatus.FAILED).success


def test_suggestion_requires_rationale_and_ranks_specific_higher():
    with pytest.raises(ValidationError):
        ReflectionSuggestion(
            category=SuggestionCategory.CLARIFICATION, rationale="", confidence=0.5, target_candidate_id="c"
        )
    vague = ReflectionSuggestion(
        category=SuggestionCategory.CLARIFICATION, rationale="Be clearer", confidence=0.8, target_candidate_id="c"
    )
    specific = vague.model_copy(update={"target_text": "Answer", "proposed_text": "Answer with one word"})
    assert specific.specificity > vague.specificity
    assert specific.rank_score > vague.rank_score
    assert vague.model_copy(update={"support": 3}).rank_score > vague.rank_score


def test_population_rejects_duplicates_and_enforces_bound():
    population = Population(size_bound=2)
    first = make_candidate("one")
    population.add(first)
    with pytest.raises(ValueError):
        population.add(first)
    with pytest.raises(ValueError):
        population.reset([make_candidate("a"), make_candidate("b"), make_candidate("c")])


def test_population_pending_and_evaluated():
    scored = make_candidate("scored", objectives=(0.5, 0.5, 0.5, 0.5))
    pending = make_candidate("pending")
    population = Population(size_bound=4)
    population.reset([scored, pending])
    assert population.evaluated() == [scored]
    assert population.pending() == [pending]
    assert scored.id in population
    assert len(population) == 2


def test_config_defaults():
    config = OptimizationConfig()
    assert config.min_success_fraction == 0.5
    assert config.tournament_size == 3
    assert config.offspring_budget == 5
    assert config.convergence_priority[0] == ConvergenceSignal.HYPERVOLUME_SATURATION


def test_config_rejects_unknown_fields_and_bad_rates():
    with pytest.raises(ValidationError):
        OptimizationConfig(unknown_option=1)
    with pytest.raises(ValidationError):
        OptimizationConfig(min_mutation_rate=0.3, base_mutation_rate=0.2)
    with pytest.raises(ValidationError):
        OptimizationConfig(population_size=4, offspring_per_generation=5)


def test_config_validates_weights_and_priority():
    with pytest.raises(ValidationError):
        OptimizationConfig(objective_weights={"fluency": 1.0})
    with pytest.raises(ValidationError):
        OptimizationConfig(objective_weights={"accuracy": -1.0})
    with pytest.raises(ValidationError):
        OptimizationConfig(convergence_priority=(ConvergenceSignal.BUDGET,))
    with pytest.raises(ValidationError):
        OptimizationConfig(
            convergence_priority=(ConvergenceSignal.FITNESS_PLATEAU, ConvergenceSignal.FITNESS_PLATEAU)
        )


def test_config_from_profile_applies_overrides():
    config = OptimizationConfig.from_profile("fast", max_generations=2)
    assert config.max_generations == 2
    assert config.population_size == 12
    with pytest.raises(ValueError):
        OptimizationConfig.from_profile("turbo")


def test_config_from_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("profile: quality\nmax_generations: 3\nseed: 11\n", encoding="utf-8")
    config = OptimizationConfig.from_yaml(path)
    assert config.max_generations == 3
    assert config.seed == 11
    assert config.min_success_fraction == 0.7


def test_config_from_yaml_rejects_unknown_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("max_generations: 3\ndataset_path: data.jsonl\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        OptimizationConfig.from_yaml(path)


def test_load_task_cases(tmp_path):
    path = tmp_path / "cases.jsonl"
    lines = [
        json.dumps({"id": "a", "input": {"text": "great"}, "expected": "positive"}),
        "",
        json.dumps({"input": {"text": "awful"}, "expected": "negative"}),
    ]
    path.write_text("\n".join(lines), encoding="utf-8")
    cases = load_task_cases(path)
    assert [c.expected for c in cases] == ["positive", "negative"]
    assert cases[0].id == "a"


def test_load_task_cases_reports_bad_line(tmp_path):
    path = tmp_path / "cases.jsonl"
    path.write_text('{"input": {}}\n{broken\n', encoding="utf-8")
    with pytest.raises(ValueError, match=":2:"):
        load_task_cases(path)


def test_seed_lineage_operator_value():
    candidate = PromptCandidate(text="x", generation=0)
    assert candidate.lineage.parent_ids == ()
    assert MutationOperator.SEED.value == "seed"


def test_config_priority_must_order_every_signal():
    with pytest.raises(ValidationError):
        OptimizationConfig(convergence_priority=(ConvergenceSignal.FITNESS_PLATEAU,))
    with pytest.raises(ValidationError):
        OptimizationConfig(convergence_priority=())
    reordered = (
        ConvergenceSignal.DIVERSITY_COLLAPSE,
        ConvergenceSignal.HYPERVOLUME_SATURATION,
        ConvergenceSignal.FITNESS_PLATEAU,
    )
    assert OptimizationConfig(convergence_priority=reordered).convergence_priority == reordered
