"""Unit tests for the scoring function."""

import math

import pytest

from feedrank.config import KindWeights, RankingConfig
from feedrank.data_model import ItemKind
from feedrank.ranker import RankingSignals, compute_raw_score, score_components


def _make_signals(**overrides: float | int | None) -> RankingSignals:
    """Create signals with moderate engagement."""
    values: dict[str, float | int | None] = {
        "upvotes_count": 10,
        "saves_count": 5,
        "comments_count": 2,
        "visits_count": 100,
        "age_hours": 12.0,
        "creator_quality": 50.0,
        "promotion_boost": 0.0,
        "abuse_factor": 1.0,
    }
    values.update(overrides)
    return RankingSignals(**values)  # type: ignore[arg-type]


class TestBaseEngagement:
    """Tests for the log-compressed engagement term."""

    @pytest.mark.unit
    @pytest.mark.parametrize("kind", [ItemKind.CARD, ItemKind.COLLECTION])
    def test_zero_engagement_scores_zero(self, kind: ItemKind) -> None:
        """All-zero counts give exactly 0, never negative or NaN."""
        signals = _make_signals(
            upvotes_count=0, saves_count=0, comments_count=0, visits_count=0
        )
        score = compute_raw_score(kind, signals)
        assert score == 0.0
        assert not math.isnan(score)

    @pytest.mark.unit
    def test_weights_apply_per_kind(self) -> None:
        """Card and collection weight vectors are selected by kind."""
        config = RankingConfig(
            card_weights=KindWeights(w_u=1.0, w_s=0.0, w_c=0.0, w_v=0.0),
            collection_weights=KindWeights(w_u=0.0, w_s=0.0, w_c=0.0, w_v=0.0),
        )
        signals = _make_signals(age_hours=0.0, creator_quality=0.0)

        card = score_components(ItemKind.CARD, signals, config)
        collection = score_components(ItemKind.COLLECTION, signals, config)

        assert card.base == pytest.approx(math.log(11))
        assert collection.base == 0.0

    @pytest.mark.unit
    def test_components_multiply_to_raw_score(self) -> None:
        """The raw score is the product of every factor."""
        c = score_components(ItemKind.CARD, _make_signals(promotion_boost=1.0))
        product = (
            c.base * c.creator_factor * c.promotion_factor * c.age_decay * c.abuse_factor
        )
        assert c.raw_score == pytest.approx(product)


class TestNonNegativity:
    """Raw scores are never negative."""

    @pytest.mark.unit
    @pytest.mark.parametrize("kind", [ItemKind.CARD, ItemKind.COLLECTION])
    @pytest.mark.parametrize(
        "overrides",
        [
            {},
            {"age_hours": 1_000_000.0},
            {"abuse_factor": 0.0},
            {"creator_quality": 0.0},
            {"upvotes_count": 0, "visits_count": 10_000_000},
            {"promotion_boost": 999.0, "abuse_factor": 0.001},
        ],
    )
    def test_score_non_negative(
        self, kind: ItemKind, overrides: dict[str, float]
    ) -> None:
        """Any valid signal set yields a score >= 0."""
        score = compute_raw_score(kind, _make_signals(**overrides))
        assert score >= 0.0
        assert math.isfinite(score)


class TestAgeDecay:
    """Tests for exponential half-life decay."""

    @pytest.mark.unit
    @pytest.mark.parametrize("kind", [ItemKind.CARD, ItemKind.COLLECTION])
    def test_fresher_item_scores_higher(self, kind: ItemKind) -> None:
        """Age 1h strictly beats age 1000h, all else equal."""
        fresh = compute_raw_score(kind, _make_signals(age_hours=1.0))
        stale = compute_raw_score(kind, _make_signals(age_hours=1000.0))
        assert fresh > stale

    @pytest.mark.unit
    def test_decay_halves_at_half_life(self) -> None:
        """Decay factor is 0.5 exactly one half-life in."""
        config = RankingConfig()
        c = score_components(
            ItemKind.CARD,
            _make_signals(age_hours=config.card_half_life_hours),
            config,
        )
        assert c.age_decay == pytest.approx(0.5)

    @pytest.mark.unit
    def test_cards_decay_faster_than_collections(self) -> None:
        """Default card half-life is shorter than the collection one."""
        signals = _make_signals(age_hours=72.0)
        card = score_components(ItemKind.CARD, signals)
        collection = score_components(ItemKind.COLLECTION, signals)
        assert card.age_decay < collection.age_decay

    @pytest.mark.unit
    def test_huge_age_stays_positive(self) -> None:
        """Extreme ages drive decay toward zero but never below it."""
        c = score_components(ItemKind.CARD, _make_signals(age_hours=1e6))
        assert c.age_decay >= 0.0
        assert not math.isnan(c.raw_score)


class TestCreatorQuality:
    """Tests for the multiplicative creator factor."""

    @pytest.mark.unit
    def test_higher_quality_scores_higher(self) -> None:
        """Raising creator quality strictly increases the score."""
        low = compute_raw_score(ItemKind.CARD, _make_signals(creator_quality=20.0))
        high = compute_raw_score(ItemKind.CARD, _make_signals(creator_quality=80.0))
        assert high > low

    @pytest.mark.unit
    def test_missing_quality_uses_configured_default(self) -> None:
        """None quality behaves like default_creator_quality."""
        config = RankingConfig(default_creator_quality=40.0)
        missing = compute_raw_score(
            ItemKind.CARD, _make_signals(creator_quality=None), config
        )
        explicit = compute_raw_score(
            ItemKind.CARD, _make_signals(creator_quality=40.0), config
        )
        assert missing == pytest.approx(explicit)


class TestPromotion:
    """Tests for the binary promotion factor."""

    @pytest.mark.unit
    def test_promotion_lifts_score(self) -> None:
        """Any positive boost strictly increases the score."""
        plain = compute_raw_score(ItemKind.CARD, _make_signals(promotion_boost=0.0))
        promoted = compute_raw_score(ItemKind.CARD, _make_signals(promotion_boost=0.1))
        assert promoted > plain

    @pytest.mark.unit
    def test_boost_magnitude_is_ignored(self) -> None:
        """Only the presence of a boost matters."""
        small = compute_raw_score(ItemKind.CARD, _make_signals(promotion_boost=0.1))
        large = compute_raw_score(ItemKind.CARD, _make_signals(promotion_boost=50.0))
        assert small == pytest.approx(large)

    @pytest.mark.unit
    def test_promotion_factor_uses_multiplier(self) -> None:
        """Promotion factor is 1 + promotion_multiplier."""
        config = RankingConfig(promotion_multiplier=0.75)
        c = score_components(
            ItemKind.COLLECTION, _make_signals(promotion_boost=1.0), config
        )
        assert c.promotion_factor == pytest.approx(1.75)


class TestAbuseSuppression:
    """Tests for the abuse penalty and its floor."""

    @pytest.mark.unit
    def test_lower_abuse_factor_scores_lower(self) -> None:
        """Lowering abuse_factor toward the floor strictly decreases the score."""
        clean = compute_raw_score(ItemKind.CARD, _make_signals(abuse_factor=1.0))
        flagged = compute_raw_score(ItemKind.CARD, _make_signals(abuse_factor=0.3))
        worst = compute_raw_score(ItemKind.CARD, _make_signals(abuse_factor=0.05))
        assert clean > flagged > worst > 0.0

    @pytest.mark.unit
    def test_floor_clamps_abuse_factor(self) -> None:
        """An abuse factor below the floor is raised to the floor."""
        config = RankingConfig(abuse_penalty_floor=0.1)
        at_zero = score_components(
            ItemKind.CARD, _make_signals(abuse_factor=0.0), config
        )
        at_floor = score_components(
            ItemKind.CARD, _make_signals(abuse_factor=0.1), config
        )
        assert at_zero.abuse_factor == 0.1
        assert at_zero.raw_score == pytest.approx(at_floor.raw_score)
        assert at_zero.raw_score > 0.0


class TestEndToEndScenario:
    """The reference card-versus-collection comparison."""

    @pytest.mark.unit
    def test_card_a_outranks_collection_b(self) -> None:
        """Card A beats collection B under default config."""
        card_a = RankingSignals(
            upvotes_count=50,
            saves_count=30,
            comments_count=10,
            visits_count=500,
            age_hours=24.0,
            creator_quality=80.0,
        )
        collection_b = RankingSignals(
            upvotes_count=20,
            saves_count=15,
            comments_count=5,
            visits_count=200,
            age_hours=48.0,
            creator_quality=60.0,
        )

        score_a = compute_raw_score(ItemKind.CARD, card_a)
        score_b = compute_raw_score(ItemKind.COLLECTION, collection_b)

        assert score_a == pytest.approx(33.245, abs=0.01)
        assert score_b == pytest.approx(22.30, abs=0.01)
        assert score_a > score_b
