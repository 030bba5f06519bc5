import random
import warnings

import pytest

from histoquest.errors import ConfigError, EmptyPoolWarning
from histoquest.models import DifficultyTier, Phase
from histoquest.modes import timeline_quest, trivia_race
from histoquest.selector import RoundSelector, validate_phase_plan

from .conftest import make_question, make_timeline_pool, make_trivia_pool

EASY, MEDIUM, HARD = DifficultyTier.EASY, DifficultyTier.MEDIUM, DifficultyTier.HARD

PLAN = [Phase(EASY, 4, "Warm Up"), Phase(MEDIUM, 4, "Challenge"), Phase(HARD, 2, "Expert")]


def test_plan_splits_session_by_phase():
    items = RoundSelector(seed=1).plan(make_trivia_pool(), PLAN)

    assert len(items) == 10
    assert [item.tier for item in items] == [EASY] * 4 + [MEDIUM] * 4 + [HARD] * 2


@pytest.mark.parametrize("seed", range(20))
def test_plan_has_unique_ids_and_full_length(seed):
    items = RoundSelector(seed=seed).plan(make_trivia_pool(), PLAN)

    assert len({item.id for item in items}) == len(items) == 10


def test_plan_is_reproducible_with_seed():
    pool = make_trivia_pool()
    first = [item.id for item in RoundSelector(seed=42).plan(pool, PLAN)]
    second = [item.id for item in RoundSelector(rng=random.Random(42)).plan(pool, PLAN)]

    assert first == second


def test_repeated_ids_in_pool_are_drawn_once():
    pool = make_trivia_pool()
    items = RoundSelector(seed=3).plan(pool + pool, PLAN)

    assert len({item.id for item in items}) == 10


def test_short_tier_is_backfilled_from_other_tiers():
    pool = make_trivia_pool(hard=1)

    with pytest.warns(EmptyPoolWarning):
        items = RoundSelector(seed=5).plan(pool, PLAN)

    assert len(items) == 10
    assert len({item.id for item in items}) == 10
    assert sum(1 for item in items if item.tier == HARD) == 1
    levels = [item.tier.level for item in items]
    assert levels == sorted(levels)


def test_exhausted_pool_returns_what_exists():
    pool = make_trivia_pool(easy=2, medium=1, hard=0)

    with pytest.warns(EmptyPoolWarning):
        items = RoundSelector(seed=5).plan(pool, PLAN)

    assert sorted(item.id for item in items) == sorted(item.id for item in pool)


def test_group_filter_keeps_only_matching_topics():
    items = RoundSelector(seed=9).plan(make_trivia_pool(), PLAN, group_filter={"Rome"})

    assert len(items) == 10
    assert {item.group_key for item in items} == {"Rome"}


def test_group_filter_falls_back_per_phase():
    pool = make_trivia_pool() + [make_question("nile-1", EASY, topic="Nile")]

    with warnings.catch_warnings():
        warnings.simplefilter("error", EmptyPoolWarning)
        items = RoundSelector(seed=9).plan(pool, PLAN, group_filter={"Nile"})

    assert len(items) == 10
    assert [item.tier for item in items] == [EASY] * 4 + [MEDIUM] * 4 + [HARD] * 2


def test_repeated_tier_phase_counts_items_already_taken():
    pool = (
        [make_question(f"rome-easy-{i}", EASY) for i in range(3)]
        + [make_question(f"egypt-easy-{i}", EASY, topic="Egypt") for i in range(5)]
        + [make_question(f"rome-medium-{i}", MEDIUM) for i in range(2)]
    )
    plan = [Phase(EASY, 2, "First"), Phase(EASY, 2, "Second")]

    with warnings.catch_warnings():
        warnings.simplefilter("error", EmptyPoolWarning)
        items = RoundSelector(seed=4).plan(pool, plan, group_filter={"Rome"})

    assert len({item.id for item in items}) == 4
    assert [item.tier for item in items] == [EASY] * 4
    assert {item.group_key for item in items[:2]} == {"Rome"}


def test_surprise_groups_pick_one_to_three_topics():
    topics = ["Cavite Mutiny", "Cry of Rebellion", "First Mass", "Retraction of Rizal"]

    picks = [RoundSelector(seed=seed).surprise_groups(topics) for seed in range(100)]

    assert all(1 <= len(pick) <= 3 for pick in picks)
    assert all(pick == sorted(set(pick)) and set(pick) <= set(topics) for pick in picks)
    assert {len(pick) for pick in picks} == {1, 2, 3}
    assert RoundSelector(seed=12).surprise_groups(topics) == RoundSelector(seed=12).surprise_groups(topics)


def test_surprise_groups_with_few_topics():
    assert RoundSelector(seed=1).surprise_groups([]) == []
    assert RoundSelector(seed=1).surprise_groups(["Rome", "Rome"]) == ["Rome"]


@pytest.mark.parametrize("plan", [
    [],
    [Phase(EASY, 0), Phase(MEDIUM, 0)],
    [Phase(EASY, -1), Phase(MEDIUM, 3)],
    [Phase(HARD, 2), Phase(EASY, 2)],
])
def test_malformed_phase_plans_are_rejected(plan):
    with pytest.raises(ConfigError):
        validate_phase_plan(plan)

    with pytest.raises(ConfigError):
        RoundSelector().plan(make_trivia_pool(), plan)


def test_validate_phase_plan_returns_session_length():
    assert validate_phase_plan(trivia_race().phase_plan) == trivia_race().session_length == 10
    assert validate_phase_plan(timeline_quest().phase_plan) == timeline_quest().session_length == 5


# =============================================================================
# TIMELINE ROUNDS
# =============================================================================

def _rounds(seed=11, group_filter=None):
    mode = timeline_quest()
    return RoundSelector(seed=seed).plan_rounds(
        make_timeline_pool(), mode.phase_plan, mode.events_per_tier, group_filter
    )


def test_plan_rounds_follows_phase_plan():
    rounds = _rounds()

    assert [r.tier for r in rounds] == [EASY, EASY, MEDIUM, MEDIUM, HARD]
    assert [len(r.payload.events) for r in rounds] == [4, 4, 4, 4, 5]
    assert [r.id for r in rounds] == ["round-1", "round-2", "round-3", "round-4", "round-5"]
    assert rounds[0].payload.phase_label == "Warm Up Phase"
    assert rounds[4].payload.phase_label == "Expert Phase"


@pytest.mark.parametrize("seed", range(10))
def test_rounds_do_not_repeat_events(seed):
    rounds = _rounds(seed)
    event_ids = [event.id for r in rounds for event in r.payload.events]

    assert len(event_ids) == len(set(event_ids))


@pytest.mark.parametrize("seed", range(10))
def test_easy_rounds_stay_in_one_era_and_medium_rounds_mix(seed):
    rounds = _rounds(seed)

    for r in rounds[:2]:
        assert len({event.group_key for event in r.payload.events}) == 1
    for r in rounds[2:4]:
        assert len({event.group_key for event in r.payload.events}) == 2
        assert r.group_key == "mixed"


def test_round_correct_order_is_chronological():
    for r in _rounds():
        dates = [r.payload.event_date(event_id) for event_id in r.payload.correct_order]
        assert dates == sorted(dates)
        assert set(r.payload.correct_order) == {event.id for event in r.payload.events}


def test_round_group_filter_prefers_selected_era():
    rounds = _rounds(group_filter={"first-mass"})

    assert {event.group_key for event in rounds[0].payload.events} == {"first-mass"}
    # Only six events in the era: the second round is topped up from others
    second = [event.group_key for event in rounds[1].payload.events]
    assert second.count("first-mass") == 2
    assert len(second) == 4
