from datetime import date, datetime, timedelta, timezone

import pytest

from histoquest.models import ContentItem, DifficultyTier, Question, TimelineEvent
from histoquest.modes import timeline_quest, trivia_race
from histoquest.selector import RoundSelector
from histoquest.session import SessionStateMachine

# Wednesday
START = datetime(2026, 10, 14, 15, 30, tzinfo=timezone.utc)

ERAS = ["first-mass", "cavite-mutiny", "cry-rebellion", "retraction-rizal"]


class FakeClock:
    def __init__(self, start=START):
        self.current = start
        self.ms = 1_000_000

    def now(self):
        return self.current

    def monotonic_ms(self):
        return self.ms

    def advance(self, seconds=0.0):
        delta = int(seconds * 1000)
        self.ms += delta
        self.current += timedelta(milliseconds=delta)


class ManualTimer:
    """Keeps every scheduled callback so tests can fire them, stale or not."""

    def __init__(self):
        self.callbacks = {}
        self.delays = {}
        self.pending = set()
        self._next = 0

    def schedule(self, delay_ms, callback):
        self._next += 1
        self.callbacks[self._next] = callback
        self.delays[self._next] = delay_ms
        self.pending.add(self._next)
        return self._next

    def cancel(self, handle):
        self.pending.discard(handle)

    @property
    def latest(self):
        return self._next

    def fire(self, handle=None):
        handle = handle or self._next
        self.pending.discard(handle)
        self.callbacks[handle]()


def make_question(item_id, tier, topic="Rome", correct=1):
    return ContentItem(
        id=item_id,
        tier=tier,
        group_key=topic,
        payload=Question(
            text=f"Question {item_id}?",
            options=("A", "B", "C", "D"),
            correct=correct,
            explanation="",
        ),
    )


def make_trivia_pool(easy=8, medium=8, hard=4):
    pool = []
    for tier, count in ((DifficultyTier.EASY, easy), (DifficultyTier.MEDIUM, medium), (DifficultyTier.HARD, hard)):
        for n in range(count):
            topic = "Rome" if n % 2 == 0 else "Egypt"
            pool.append(make_question(f"{tier.value}-{n}", tier, topic))
    return pool


def make_event(event_id, era, day):
    return ContentItem(
        id=event_id,
        tier=DifficultyTier.EASY,
        group_key=era,
        payload=TimelineEvent(title=f"Event {event_id}", date=day),
    )


def make_timeline_pool(per_era=6):
    pool = []
    for index, era in enumerate(ERAS):
        for n in range(per_era):
            pool.append(make_event(f"{era}-{n}", era, date(1500 + 100 * index, 1, 1) + timedelta(days=10 * n)))
    return pool


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def trivia_pool():
    return make_trivia_pool()


@pytest.fixture
def timeline_pool():
    return make_timeline_pool()


@pytest.fixture
def trivia_machine(clock, timer):
    return SessionStateMachine(trivia_race(), clock=clock, timer=timer, selector=RoundSelector(seed=7))


@pytest.fixture
def timeline_machine(clock, timer):
    return SessionStateMachine(timeline_quest(), clock=clock, timer=timer, selector=RoundSelector(seed=7))
