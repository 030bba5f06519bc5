"""
HistoQuest - Round Selection
============================

Turns a static content pool and a phase plan into the ordered list of
items a session will present.

CONCEPT: Progressive Difficulty
-------------------------------
A phase plan such as [Easy x4, Medium x4, Hard x2] splits the session into
contiguous blocks of one tier each. Items are drawn per tier with an
unbiased shuffle, so two sessions over the same pool rarely look alike,
but an injected random.Random makes a run reproducible.

Shortages are tolerated: a phase that cannot be filled takes what exists,
and the session is topped up from any unused item of the pool.
"""

import logging
import random
import warnings
from typing import Collection, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .errors import ConfigError, EmptyPoolWarning
from .models import ContentItem, DifficultyTier, Phase, TimelineRound

logger = logging.getLogger(__name__)

# Events shown per timeline round
DEFAULT_EVENTS_PER_TIER = {
    DifficultyTier.EASY: 4,
    DifficultyTier.MEDIUM: 4,
    DifficultyTier.HARD: 5,
}

# Medium rounds mix two eras, this many events from each
EVENTS_PER_MIXED_GROUP = 3

# "Surprise me" picks between 1 and this many topics
SURPRISE_MAX_GROUPS = 3


def validate_phase_plan(phase_plan: Sequence[Phase]) -> int:
    """
    Checks a phase plan and returns the session length.

    Raises:
        ConfigError: empty plan, negative count, zero total, or a tier
            lower than the one before it.
    """
    if not phase_plan:
        raise ConfigError("Phase plan is empty")

    total = 0
    previous: Optional[DifficultyTier] = None
    for phase in phase_plan:
        if not isinstance(phase.tier, DifficultyTier):
            raise ConfigError(f"Invalid tier in phase plan: {phase.tier!r}")
        if phase.count < 0:
            raise ConfigError(f"Negative count in phase '{phase.label or phase.tier.value}'")
        if previous is not None and phase.tier.level < previous.level:
            raise ConfigError(
                f"Tiers must be non-decreasing: {phase.tier.value} after {previous.value}"
            )
        previous = phase.tier
        total += phase.count

    if total <= 0:
        raise ConfigError("Phase plan selects no items")
    return total


def _warn_short(message: str):
    logger.warning(message)
    warnings.warn(message, EmptyPoolWarning, stacklevel=3)


def _unique(pool: Iterable[ContentItem]) -> List[ContentItem]:
    """Drops repeated ids, keeping the first occurrence."""
    seen: Set[str] = set()
    items = []
    for item in pool:
        if item.id not in seen:
            seen.add(item.id)
            items.append(item)
    return items


def _filter_groups(items: List[ContentItem], group_filter: Optional[Collection[str]]) -> List[ContentItem]:
    if not group_filter:
        return items
    return [item for item in items if item.group_key in group_filter]


class RoundSelector:
    """
    Draws the items of one session.

    Args:
        rng: random source; pass a seeded random.Random for repeatable runs
        seed: shortcut for RoundSelector(rng=random.Random(seed))
    """

    def __init__(self, rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self.rng = rng if rng is not None else random.Random(seed)

    def plan(
        self,
        pool: Iterable[ContentItem],
        phase_plan: Sequence[Phase],
        group_filter: Optional[Collection[str]] = None,
    ) -> List[ContentItem]:
        """
        Selects the items of a session in presentation order.

        Args:
            pool: every available content item
            phase_plan: ordered phases, tiers non-decreasing
            group_filter: topics/eras to keep; a phase the filtered pool
                cannot fill falls back to the whole pool

        Returns:
            Items with unique ids, grouped by phase. The length equals the
            plan total whenever the pool is large enough.
        """
        target = validate_phase_plan(phase_plan)
        everything = _unique(pool)
        eligible = _filter_groups(everything, group_filter)

        chosen: List[ContentItem] = []
        chosen_ids: Set[str] = set()

        for phase in phase_plan:
            source = eligible
            if group_filter and self._available(eligible, phase.tier, chosen_ids) < phase.count:
                logger.info(f"Phase '{phase.label}' using the unfiltered pool")
                source = everything

            candidates = [
                item for item in source
                if item.tier == phase.tier and item.id not in chosen_ids
            ]
            self.rng.shuffle(candidates)
            picked = candidates[:phase.count]
            if len(picked) < phase.count:
                _warn_short(
                    f"Phase '{phase.label or phase.tier.value}' wanted {phase.count} "
                    f"{phase.tier.value} items, found {len(picked)}"
                )

            chosen.extend(picked)
            chosen_ids.update(item.id for item in picked)

        if len(chosen) < target:
            chosen.extend(self._backfill(eligible, everything, chosen_ids, target - len(chosen)))
            if len(chosen) < target:
                _warn_short(f"Pool exhausted: session has {len(chosen)} of {target} items")

        # Backfilled items may come from an earlier tier
        chosen.sort(key=lambda item: item.tier.level)
        return chosen

    def _backfill(
        self,
        eligible: List[ContentItem],
        everything: List[ContentItem],
        chosen_ids: Set[str],
        missing: int,
    ) -> List[ContentItem]:
        extra: List[ContentItem] = []
        for source in (eligible, everything):
            remaining = [item for item in source if item.id not in chosen_ids]
            while len(extra) < missing and remaining:
                item = remaining.pop(self.rng.randrange(len(remaining)))
                extra.append(item)
                chosen_ids.add(item.id)
            if len(extra) >= missing:
                break
        return extra

    def surprise_groups(self, groups: Iterable[str], max_groups: int = SURPRISE_MAX_GROUPS) -> List[str]:
        """
        Random group filter for the "Surprise me" topic choice.

        Args:
            groups: topics or eras to choose from
            max_groups: upper bound of the pick (at least one is picked)

        Returns:
            Between 1 and max_groups distinct groups, sorted. Empty when
            there is nothing to choose from.
        """
        candidates = sorted(set(groups))
        if not candidates or max_groups < 1:
            return []
        count = self.rng.randint(1, min(max_groups, len(candidates)))
        picked = sorted(self.rng.sample(candidates, count))
        logger.info(f"Surprise groups: {picked}")
        return picked

    @staticmethod
    def _available(items: List[ContentItem], tier: DifficultyTier, chosen_ids: Set[str]) -> int:
        return sum(1 for item in items if item.tier == tier and item.id not in chosen_ids)

    # =========================================================================
    # TIMELINE ROUNDS
    # =========================================================================

    def plan_rounds(
        self,
        pool: Iterable[ContentItem],
        phase_plan: Sequence[Phase],
        events_per_tier: Optional[Mapping[DifficultyTier, int]] = None,
        group_filter: Optional[Collection[str]] = None,
    ) -> List[ContentItem]:
        """
        Builds timeline rounds: one round item per phase count.

        Each round holds a handful of events (shuffled for display) and
        their chronological order. Easy rounds stay inside one era when
        possible, medium rounds mix two eras, hard rounds draw from all.
        Events are not repeated within a session until the pool runs out.
        """
        validate_phase_plan(phase_plan)
        events_per_tier = events_per_tier or DEFAULT_EVENTS_PER_TIER
        events = _unique(pool)

        rounds: List[ContentItem] = []
        used: Set[str] = set()

        for phase in phase_plan:
            size = events_per_tier.get(phase.tier, DEFAULT_EVENTS_PER_TIER[phase.tier])
            for _ in range(phase.count):
                available = [e for e in events if e.id not in used]
                if len(available) < size:
                    available = list(events)

                picked = self._pick_events(available, phase.tier, size, group_filter)
                if not picked:
                    _warn_short(f"No events left for a {phase.tier.value} round")
                    continue
                if len(picked) < size:
                    _warn_short(f"Round has {len(picked)} of {size} events")

                used.update(e.id for e in picked)
                rounds.append(self._make_round(len(rounds) + 1, phase, picked))

        return rounds

    def _pick_events(
        self,
        available: List[ContentItem],
        tier: DifficultyTier,
        size: int,
        group_filter: Optional[Collection[str]],
    ) -> List[ContentItem]:
        if group_filter:
            inside = [e for e in available if e.group_key in group_filter]
            self.rng.shuffle(inside)
            if len(inside) < size:
                outside = [e for e in available if e.group_key not in group_filter]
                self.rng.shuffle(outside)
                inside.extend(outside)
            return inside[:size]

        groups: Dict[str, List[ContentItem]] = {}
        for event in available:
            groups.setdefault(event.group_key, []).append(event)

        if tier == DifficultyTier.EASY:
            big_enough = sorted(key for key, members in groups.items() if len(members) >= size)
            if big_enough:
                members = list(groups[self.rng.choice(big_enough)])
                self.rng.shuffle(members)
                return members[:size]

        elif tier == DifficultyTier.MEDIUM:
            mixable = sorted(
                key for key, members in groups.items()
                if len(members) >= EVENTS_PER_MIXED_GROUP
            )
            if len(mixable) >= 2:
                picked: List[ContentItem] = []
                for key in self.rng.sample(mixable, 2):
                    members = list(groups[key])
                    self.rng.shuffle(members)
                    picked.extend(members[:EVENTS_PER_MIXED_GROUP])
                self.rng.shuffle(picked)
                picked = picked[:size]
                if len(picked) < size:
                    rest = [e for e in available if e not in picked]
                    self.rng.shuffle(rest)
                    picked.extend(rest[:size - len(picked)])
                return picked

        everything = list(available)
        self.rng.shuffle(everything)
        return everything[:size]

    @staticmethod
    def _make_round(number: int, phase: Phase, events: List[ContentItem]) -> ContentItem:
        ordered = sorted(events, key=lambda e: (e.payload.date, e.id))
        groups = sorted({e.group_key for e in events})
        return ContentItem(
            id=f"round-{number}",
            tier=phase.tier,
            group_key=groups[0] if len(groups) == 1 else "mixed",
            payload=TimelineRound(
                events=tuple(events),
                correct_order=tuple(e.id for e in ordered),
                phase_label=phase.label,
            ),
        )
