"""Tests for the freshness policy and the exchange session clock."""

from datetime import UTC, datetime, time, timedelta

from helpers import SESSION_OPEN_NOW, WEEKEND_NOW

from barcache.core.services.sessions import MarketSession
from barcache.core.services.staleness import RecentCollections, StalenessPolicy


class TestStalenessPolicy:
    def test_intraday_bar_stale_while_open_but_fresh_while_closed(self):
        policy = StalenessPolicy(intraday_threshold_minutes=10, closed_session_floor_minutes=24 * 60)
        latest = SESSION_OPEN_NOW - timedelta(minutes=20)

        open_decision = policy.evaluate("5m", latest, SESSION_OPEN_NOW, session_open=True)
        closed_decision = policy.evaluate("5m", latest, SESSION_OPEN_NOW, session_open=False)

        assert open_decision.stale
        assert open_decision.reason == "age_exceeds_threshold"
        assert round(open_decision.age_minutes) == 20
        assert not closed_decision.stale
        assert closed_decision.threshold_minutes == 24 * 60

    def test_daily_threshold_tolerates_long_weekend(self):
        policy = StalenessPolicy()
        # Friday's daily bar read late on the Monday holiday.
        latest = datetime(2024, 2, 16, 5, 0, tzinfo=UTC)
        now = datetime(2024, 2, 20, 3, 0, tzinfo=UTC)

        assert not policy.evaluate("1d", latest, now, session_open=True).stale
        assert not policy.evaluate("3d", latest, now, session_open=True).stale

    def test_weekly_bar_is_fresh_while_its_week_is_open(self):
        policy = StalenessPolicy()
        monday = datetime(2024, 3, 4, 5, 0, tzinfo=UTC)

        friday = policy.evaluate("1w", monday, datetime(2024, 3, 8, 15, 0, tzinfo=UTC), session_open=True)
        next_tuesday = policy.evaluate("1w", monday, datetime(2024, 3, 12, 15, 0, tzinfo=UTC), session_open=True)
        two_weeks_on = policy.evaluate("2w", monday, datetime(2024, 3, 18, 15, 0, tzinfo=UTC), session_open=True)

        assert not friday.stale
        assert friday.age_minutes == 0
        assert not next_tuesday.stale
        assert two_weeks_on.stale

    def test_monthly_bar_ages_from_the_end_of_its_month(self):
        policy = StalenessPolicy()
        march = datetime(2024, 3, 1, 5, 0, tzinfo=UTC)

        assert not policy.evaluate("1mo", march, datetime(2024, 3, 20, 14, 0, tzinfo=UTC), session_open=True).stale
        assert not policy.evaluate("3mo", march, datetime(2024, 4, 2, 14, 0, tzinfo=UTC), session_open=True).stale
        assert policy.evaluate("1mo", march, datetime(2024, 4, 10, 14, 0, tzinfo=UTC), session_open=True).stale

    def test_intraday_age_stops_at_the_last_close(self):
        policy = StalenessPolicy()
        friday_last_minute = datetime(2024, 3, 8, 20, 59, tzinfo=UTC)
        sunday = datetime(2024, 3, 10, 16, 0, tzinfo=UTC)

        decision = policy.evaluate("1m", friday_last_minute, sunday, session_open=False)

        assert not decision.stale
        assert decision.age_minutes == 1
        # A feed that stopped on Thursday is still stale over the weekend.
        assert policy.evaluate("1m", friday_last_minute - timedelta(days=1), sunday, session_open=False).stale

    def test_derived_code_uses_source_family(self):
        policy = StalenessPolicy(intraday_threshold_minutes=10, daily_threshold_minutes=5000)
        assert policy.threshold_for("3h", session_open=True) == 10
        assert policy.threshold_for("2w", session_open=True) == 5000

    def test_recent_collection_overrides_age(self):
        policy = StalenessPolicy(intraday_threshold_minutes=10, recent_override=timedelta(minutes=2))
        latest = SESSION_OPEN_NOW - timedelta(hours=3)

        decision = policy.evaluate(
            "1m",
            latest,
            SESSION_OPEN_NOW,
            session_open=True,
            recently_collected_at=SESSION_OPEN_NOW - timedelta(seconds=30),
        )
        expired = policy.evaluate(
            "1m",
            latest,
            SESSION_OPEN_NOW,
            session_open=True,
            recently_collected_at=SESSION_OPEN_NOW - timedelta(minutes=5),
        )

        assert not decision.stale
        assert decision.reason == "recently_collected"
        assert expired.stale


class TestRecentCollections:
    def test_mark_and_expire(self, clock):
        recent = RecentCollections(clock=clock, retention=timedelta(minutes=10))
        recent.mark("AAPL")
        assert recent.last_collected("AAPL") == SESSION_OPEN_NOW

        clock.advance(minutes=11)
        recent.mark("MSFT")
        assert recent.last_collected("AAPL") is None
        assert recent.last_collected("MSFT") == clock.now


class TestMarketSession:
    def test_open_bounds_are_inclusive(self):
        session = MarketSession()
        assert session.is_open(datetime(2024, 3, 6, 14, 30, tzinfo=UTC))  # 09:30 ET
        assert session.is_open(datetime(2024, 3, 6, 21, 0, tzinfo=UTC))  # 16:00 ET
        assert not session.is_open(datetime(2024, 3, 6, 21, 1, tzinfo=UTC))

    def test_close_minute_counts_as_open(self):
        session = MarketSession()
        assert session.is_open(datetime(2024, 3, 6, 21, 0, 15, tzinfo=UTC))  # 16:00:15 ET
        assert session.is_open(datetime(2024, 3, 6, 21, 0, 59, tzinfo=UTC))
        assert not session.is_open(datetime(2024, 3, 6, 14, 29, 59, tzinfo=UTC))

    def test_weekend_is_closed(self):
        assert not MarketSession().is_open(WEEKEND_NOW)

    def test_daylight_saving_shift(self):
        session = MarketSession()
        # After the March 10 switch 09:30 ET is 13:30 UTC.
        assert session.is_open(datetime(2024, 3, 11, 13, 30, tzinfo=UTC))
        assert not session.is_open(datetime(2024, 3, 6, 13, 30, tzinfo=UTC))

    def test_last_close_on_weekend_is_friday(self):
        assert MarketSession().last_close(WEEKEND_NOW) == datetime(2024, 3, 8, 21, 0, tzinfo=UTC)

    def test_last_close_before_open_is_previous_day(self):
        morning = datetime(2024, 3, 6, 13, 0, tzinfo=UTC)
        assert MarketSession().last_close(morning) == datetime(2024, 3, 5, 21, 0, tzinfo=UTC)

    def test_regular_hours_filter(self):
        session = MarketSession(open_time=time(9, 30), close_time=time(16, 0))
        assert session.is_regular_hours(datetime(2024, 3, 6, 15, 0, tzinfo=UTC))
        assert not session.is_regular_hours(datetime(2024, 3, 6, 12, 0, tzinfo=UTC))
