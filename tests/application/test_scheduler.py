import random
from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from srscore.application.config import SchedulerSettings
from srscore.application.scheduler import (
    RatingProcessor,
    apply_rating,
    validate_rating,
    validate_time_spent,
)
from srscore.domain.errors import ClockRegression, InvalidRating, InvalidTimeSpent
from srscore.domain.models import Card, CardState, Rating

MINUTE = timedelta(minutes=1)
DAY = timedelta(days=1)


@pytest.fixture
def exact():
    """Processor without fuzz, for asserting exact intervals."""
    return RatingProcessor(SchedulerSettings(fuzz_factor=0), id_factory=lambda: "rev_x")


def review_card(t0, interval_days=10, ease=2.5, **kwargs) -> Card:
    return Card(
        id="card_r",
        deck_id="deck_1",
        state=CardState.REVIEW,
        interval=timedelta(days=interval_days),
        ease=ease,
        due_at=t0,
        review_count=5,
        last_reviewed_at=t0 - timedelta(days=interval_days),
        first_reviewed_at=t0 - timedelta(days=30),
        created_at=t0 - timedelta(days=30),
        **kwargs,
    )


# --- Learning ladder ---


def test_good_good_good_walks_ladder_and_graduates(processor, new_card, t0):
    card, _ = processor.apply_rating(new_card, Rating.GOOD, t0)
    assert card.state is CardState.LEARNING
    assert card.learning_step == 0
    assert card.due_at == t0 + MINUTE

    t1 = t0 + timedelta(minutes=2)
    card, _ = processor.apply_rating(card, Rating.GOOD, t1)
    assert card.state is CardState.LEARNING
    assert card.learning_step == 1
    assert card.due_at == t1 + timedelta(minutes=10)

    t2 = t0 + timedelta(minutes=12)
    card, event = processor.apply_rating(card, Rating.GOOD, t2)
    assert card.state is CardState.REVIEW
    assert card.learning_step == 0
    assert card.interval == timedelta(days=4)
    assert card.due_at == t0 + timedelta(minutes=12) + timedelta(days=4)
    assert card.ease == 2.5
    assert card.review_count == 3
    assert event.prev_state is CardState.LEARNING
    assert event.new_state is CardState.REVIEW


@pytest.mark.parametrize("steps", [[1.0], [1.0, 10.0], [1.0, 5.0, 10.0, 60.0]])
def test_repeated_good_reaches_review_in_ladder_length_plus_one(new_card, t0, steps):
    processor = RatingProcessor(SchedulerSettings(learning_steps_minutes=steps))
    card, now = new_card, t0
    ratings = 0
    while card.state is not CardState.REVIEW:
        card, _ = processor.apply_rating(card, Rating.GOOD, now)
        ratings += 1
        now = card.due_at
        assert ratings <= len(steps) + 1
    assert ratings == len(steps) + 1


@pytest.mark.parametrize("rating", [Rating.AGAIN, Rating.HARD])
def test_new_card_again_or_hard_enters_ladder_at_step_zero(processor, new_card, t0, rating):
    card, _ = processor.apply_rating(new_card, rating, t0)
    assert card.state is CardState.LEARNING
    assert card.learning_step == 0
    assert card.interval == MINUTE
    assert card.due_at == t0 + MINUTE


def test_new_card_easy_graduates_immediately(exact, new_card, t0):
    card, _ = exact.apply_rating(new_card, Rating.EASY, t0)
    assert card.state is CardState.REVIEW
    assert card.interval == timedelta(days=5)
    assert card.due_at == t0 + timedelta(days=5)


def test_learning_again_resets_to_first_step(processor, t0):
    card = Card("c", "d", state=CardState.LEARNING, learning_step=1, due_at=t0)
    card, _ = processor.apply_rating(card, Rating.AGAIN, t0)
    assert card.state is CardState.LEARNING
    assert card.learning_step == 0
    assert card.due_at == t0 + MINUTE


def test_learning_hard_repeats_current_step(processor, t0):
    card = Card("c", "d", state=CardState.LEARNING, learning_step=1, due_at=t0)
    card, _ = processor.apply_rating(card, Rating.HARD, t0)
    assert card.learning_step == 1
    assert card.due_at == t0 + timedelta(minutes=10)


def test_learning_easy_graduates_with_easy_interval(exact, t0):
    card = Card("c", "d", state=CardState.LEARNING, learning_step=0, due_at=t0, ease=2.1)
    card, _ = exact.apply_rating(card, Rating.EASY, t0)
    assert card.state is CardState.REVIEW
    assert card.interval == timedelta(days=5)
    assert card.ease == 2.1


def test_learning_step_beyond_shrunken_ladder_is_clamped(processor, t0):
    card = Card("c", "d", state=CardState.LEARNING, learning_step=7, due_at=t0)
    card, _ = processor.apply_rating(card, Rating.HARD, t0)
    assert card.learning_step == 1
    assert card.due_at == t0 + timedelta(minutes=10)


@pytest.mark.parametrize(
    "rating, expected_days", [(Rating.GOOD, 1), (Rating.EASY, 2)]
)
def test_relearning_graduates_with_short_intervals(exact, t0, rating, expected_days):
    card = Card(
        "c", "d", state=CardState.RELEARNING, learning_step=1, ease=1.7, due_at=t0, laps_count=1
    )
    card, _ = exact.apply_rating(card, rating, t0)
    assert card.state is CardState.REVIEW
    assert card.interval == timedelta(days=expected_days)
    assert card.ease == 1.7
    assert card.laps_count == 1


def test_relearning_again_stays_in_relearning(processor, t0):
    card = Card("c", "d", state=CardState.RELEARNING, learning_step=1, due_at=t0)
    card, _ = processor.apply_rating(card, Rating.AGAIN, t0)
    assert card.state is CardState.RELEARNING
    assert card.learning_step == 0


# --- Review state ---


def test_review_again_lapses_into_relearning(processor, t0):
    card = review_card(t0, interval_days=10, ease=2.5)
    updated, event = processor.apply_rating(card, Rating.AGAIN, t0)

    assert updated.laps_count == card.laps_count + 1
    assert updated.state is CardState.RELEARNING
    assert updated.learning_step == 0
    assert updated.due_at == t0 + MINUTE
    assert updated.interval == MINUTE
    assert updated.ease == pytest.approx(1.7)
    assert event.prev_interval == timedelta(days=10)
    assert event.new_interval == MINUTE


def test_review_hard_good_easy_intervals(exact, t0):
    card = review_card(t0, interval_days=10, ease=2.5)

    hard, _ = exact.apply_rating(card, Rating.HARD, t0)
    assert hard.interval == timedelta(days=12)
    assert hard.ease == pytest.approx(2.3)

    good, _ = exact.apply_rating(card, Rating.GOOD, t0)
    assert good.interval == timedelta(days=25)
    assert good.ease == 2.5

    easy, _ = exact.apply_rating(card, Rating.EASY, t0)
    # 10 * 2.65 * 1.3 = 34.45
    assert easy.interval == timedelta(days=34)
    assert easy.ease == pytest.approx(2.65)
    assert easy.due_at == t0 + timedelta(days=34)


def test_review_interval_is_capped(exact, t0):
    card = review_card(t0, interval_days=300)
    card, _ = exact.apply_rating(card, Rating.GOOD, t0)
    assert card.interval == timedelta(days=365)


def test_review_ignores_stray_learning_step(exact, t0):
    card = review_card(t0, learning_step=3)
    card, _ = exact.apply_rating(card, Rating.GOOD, t0)
    assert card.learning_step == 0


def test_review_ease_respects_optional_cap(t0):
    processor = RatingProcessor(SchedulerSettings(fuzz_factor=0, max_ease=2.6))
    card, _ = processor.apply_rating(review_card(t0), Rating.EASY, t0)
    assert card.ease == 2.6


@pytest.mark.parametrize("ease", [1.3, 1.35, 2.5, 3.4])
@pytest.mark.parametrize("interval_days", [0, 1, 2, 10, 400])
@pytest.mark.parametrize("rating", list(Rating))
def test_review_never_breaks_ease_floor_or_one_day_minimum(t0, ease, interval_days, rating):
    processor = RatingProcessor(rng=random.Random(interval_days))
    card, _ = processor.apply_rating(review_card(t0, interval_days, ease), rating, t0)

    assert card.ease >= processor.settings.min_ease
    if rating is Rating.AGAIN:
        assert card.state is CardState.RELEARNING
    else:
        assert card.state is CardState.REVIEW
        assert DAY <= card.interval <= timedelta(days=365)


# --- Fuzz ---


def test_fuzz_stays_within_five_percent(t0):
    card = review_card(t0, interval_days=100)
    for seed in range(50):
        processor = RatingProcessor(rng=random.Random(seed))
        updated, _ = processor.apply_rating(card, Rating.GOOD, t0)
        days = updated.interval / DAY
        # 250 days +/- 12.5
        assert 237 <= days <= 263
        assert days == int(days)


def test_fuzz_is_reproducible_with_same_seed(t0):
    card = review_card(t0, interval_days=40)
    a, _ = RatingProcessor(rng=random.Random(7)).apply_rating(card, Rating.GOOD, t0)
    b, _ = RatingProcessor(rng=random.Random(7)).apply_rating(card, Rating.GOOD, t0)
    assert a.interval == b.interval


def test_fuzz_seed_from_settings(t0):
    card = review_card(t0, interval_days=40)
    settings = SchedulerSettings(fuzz_seed=123)
    a, _ = RatingProcessor(settings).apply_rating(card, Rating.GOOD, t0)
    b, _ = RatingProcessor(settings).apply_rating(card, Rating.GOOD, t0)
    assert a.interval == b.interval


def test_one_day_interval_is_not_fuzzed(t0):
    rng = MagicMock()
    processor = RatingProcessor(rng=rng)
    card, _ = processor.apply_rating(review_card(t0, interval_days=1, ease=1.3), Rating.HARD, t0)
    assert card.interval == DAY
    rng.uniform.assert_not_called()


def test_graduation_is_not_fuzzed(t0):
    rng = MagicMock()
    processor = RatingProcessor(rng=rng)
    card = Card("c", "d", state=CardState.LEARNING, learning_step=1, due_at=t0)
    card, _ = processor.apply_rating(card, Rating.GOOD, t0)
    assert card.interval == timedelta(days=4)
    rng.uniform.assert_not_called()


# --- Bookkeeping ---


def test_every_rating_updates_counters_and_timestamps(processor, new_card, t0):
    first, event = processor.apply_rating(new_card, Rating.GOOD, t0, time_spent_ms=4200)
    assert first.review_count == 1
    assert first.last_reviewed_at == t0
    assert first.first_reviewed_at == t0
    assert event.id == "rev_1"
    assert event.card_id == new_card.id
    assert event.rating == 3
    assert event.time_spent_ms == 4200
    assert event.reviewed_at == t0
    assert event.is_first_study

    later = t0 + timedelta(minutes=5)
    second, event = processor.apply_rating(first, Rating.GOOD, later)
    assert second.review_count == 2
    assert second.last_reviewed_at == later
    assert second.first_reviewed_at == t0
    assert event.id == "rev_2"
    assert not event.is_first_study


def test_input_card_is_not_mutated(processor, new_card, t0):
    processor.apply_rating(new_card, Rating.GOOD, t0)
    assert new_card.state is CardState.NEW
    assert new_card.review_count == 0
    with pytest.raises(FrozenInstanceError):
        new_card.state = CardState.REVIEW


def test_naive_now_is_treated_as_utc(processor, new_card, t0):
    card, _ = processor.apply_rating(new_card, Rating.GOOD, t0.replace(tzinfo=None))
    assert card.last_reviewed_at == t0


def test_module_level_apply_rating(new_card, t0):
    card, event = apply_rating(new_card, 3, t0)
    assert card.state is CardState.LEARNING
    assert event.id.startswith("rev_")


# --- Rejections ---


@pytest.mark.parametrize("rating", [0, 5, -1, "3", 3.0, True, None])
def test_invalid_rating_is_rejected(processor, new_card, t0, rating):
    with pytest.raises(InvalidRating) as exc:
        processor.apply_rating(new_card, rating, t0)
    assert exc.value.rating == rating


def test_invalid_rating_is_a_value_error():
    with pytest.raises(ValueError):
        validate_rating(9)


def test_validate_rating_returns_enum():
    assert validate_rating(4) is Rating.EASY


@pytest.mark.parametrize("time_spent", [-1, 1.5, "10"])
def test_invalid_time_spent_is_rejected(processor, new_card, t0, time_spent):
    with pytest.raises(InvalidTimeSpent):
        processor.apply_rating(new_card, Rating.GOOD, t0, time_spent_ms=time_spent)


def test_validate_time_spent_accepts_zero():
    assert validate_time_spent(0) == 0


def test_clock_regression_is_rejected(processor, t0):
    card = review_card(t0)
    card = replace(card, last_reviewed_at=t0)
    with pytest.raises(ClockRegression) as exc:
        processor.apply_rating(card, Rating.GOOD, t0 - timedelta(seconds=1))
    assert exc.value.card_id == card.id


def test_rating_at_exact_last_review_time_is_allowed(processor, t0):
    card = replace(review_card(t0), last_reviewed_at=t0)
    updated, _ = processor.apply_rating(card, Rating.GOOD, t0)
    assert updated.review_count == card.review_count + 1


def test_processor_uses_custom_ladder():
    processor = RatingProcessor(SchedulerSettings(learning_steps_minutes=[2, 30]))
    now = datetime(2024, 1, 1).astimezone()
    card, _ = processor.apply_rating(Card.new("c", "d", now), Rating.GOOD, now)
    assert card.interval == timedelta(minutes=2)
