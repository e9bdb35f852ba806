"""
Tests for derived engagement metrics
"""

from analytics_engine.config import settings
from analytics_engine.models.analytic import Analytic
from analytics_engine.utils.scoring import (
    click_through_rate,
    engagement_rate,
    engagement_score,
    format_count,
    growth_rate,
    popularity_score,
    reaction_count,
)

SAMPLE = {
    "views_count": 100,
    "likes_count": 20,
    "shares_count": 10,
    "clicks_count": 15,
    "replies_count": 5,
    "follows_count": 3,
    "bookmarks_count": 2,
}


class TestClickThroughRate:
    def test_no_impressions(self):
        assert click_through_rate({"clicks_count": 5, "impressions_count": 0}) == 0.0

    def test_rounded_percentage(self):
        assert click_through_rate({"clicks_count": 1, "impressions_count": 3}) == 33.33

    def test_reads_orm_rows(self):
        row = Analytic(clicks_count=1, impressions_count=4)
        assert click_through_rate(row) == 25.0


class TestEngagementScore:
    def test_default_weights(self):
        assert engagement_score(SAMPLE) == 25.15

    def test_configured_weights(self):
        settings.engagement_weights = {"views": 1.0}
        assert engagement_score({"views_count": 7}) == 7.0

    def test_explicit_weights_override(self):
        assert engagement_score({"likes_count": 2}, weights={"likes": 0.5}) == 1.0

    def test_empty(self):
        assert engagement_score({}) == 0.0


class TestGrowthRate:
    def test_increase(self):
        assert growth_rate(15, 10) == 50.0

    def test_decrease(self):
        assert growth_rate(10, 20) == -50.0

    def test_no_baseline(self):
        assert growth_rate(5, 0) is None
        assert growth_rate(5, None) is None


class TestOtherMetrics:
    def test_reaction_count(self):
        assert reaction_count({"likes_count": 2, "replies_count": 1, "votes_count": 3, "shares_count": 4}) == 10

    def test_engagement_rate(self):
        assert engagement_rate({"impressions_count": 0, "likes_count": 5}) == 0.0
        assert engagement_rate({"impressions_count": 50, "likes_count": 5, "shares_count": 3, "replies_count": 2}) == 20.0

    def test_popularity_score(self):
        assert popularity_score({"likes_count": 10, "shares_count": 4}) == 4.0

    def test_format_count(self):
        assert format_count(999) == "999"
        assert format_count(1500) == "1.50K"
        assert format_count(2_300_000) == "2.30M"
        assert format_count(4_000_000_000) == "4.00B"
