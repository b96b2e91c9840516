"""Tests for the threshold-evaluation pass in application/alert_scheduler.py."""

import threading
import time
from datetime import date, datetime, timezone

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from domain.constants import ALERT_JOB_ID
from domain.enums import ChartInterval, ThresholdCondition, ThresholdOutcome
from domain.exceptions import ChartProviderError, ThresholdStoreUnavailable


# ---------------------------------------------------------------------------
# Breach → notify → disable
# ---------------------------------------------------------------------------


class TestBreachFlow:
    """A breached threshold is notified once and then disabled."""

    def test_breach_above_should_enqueue_one_notification_then_disable(
        self, make_scheduler, store, provider, notifier
    ):
        # Arrange
        store.add("t1", "alice", "AAPL", 150.0, ThresholdCondition.ABOVE)
        provider.prices["AAPL"] = 151.20

        # Act
        report = make_scheduler().run_pass()

        # Assert
        assert report.outcomes == {"t1": ThresholdOutcome.NOTIFIED}
        assert len(notifier.messages) == 1
        message = notifier.messages[0]
        assert message.to == "alice@example.com"
        assert "AAPL" in message.text
        assert "151.2" in message.text
        assert store.is_enabled("t1") is False
        assert store.disable_calls == [("alice", "t1")]

    def test_breach_below_should_notify(self, make_scheduler, store, provider, notifier):
        store.add("t1", "bob", "TSLA", 200.0, ThresholdCondition.BELOW)
        provider.prices["TSLA"] = 180.5

        report = make_scheduler().run_pass()

        assert report.outcomes["t1"] == ThresholdOutcome.NOTIFIED
        assert notifier.messages[0].to == "bob@example.com"
        assert "below" in notifier.messages[0].text

    def test_price_below_target_should_not_notify(self, make_scheduler, store, provider, notifier):
        # Arrange
        store.add("t1", "alice", "AAPL", 150.0, ThresholdCondition.ABOVE)
        provider.prices["AAPL"] = 149.99

        # Act
        report = make_scheduler().run_pass()

        # Assert
        assert report.outcomes["t1"] == ThresholdOutcome.NOT_BREACHED
        assert notifier.messages == []
        assert store.is_enabled("t1") is True
        assert store.disable_calls == []

    def test_price_equal_to_target_should_not_notify(self, make_scheduler, store, provider, notifier):
        store.add("t1", "alice", "AAPL", 150.0, ThresholdCondition.ABOVE)
        provider.prices["AAPL"] = 150.0

        report = make_scheduler().run_pass()

        assert report.outcomes["t1"] == ThresholdOutcome.NOT_BREACHED
        assert notifier.messages == []

    def test_disabled_threshold_should_never_be_evaluated_again(
        self, make_scheduler, store, provider, notifier
    ):
        # Arrange
        store.add("t1", "alice", "AAPL", 150.0)
        provider.prices["AAPL"] = 151.20
        scheduler = make_scheduler()
        scheduler.run_pass()

        # Act
        second = scheduler.run_pass()
        third = scheduler.run_pass()

        # Assert
        assert second.outcomes == {}
        assert third.outcomes == {}
        assert len(notifier.messages) == 1
        assert [c[0] for c in provider.calls] == ["AAPL"]

    def test_initially_disabled_threshold_should_be_skipped(self, make_scheduler, store, provider, notifier):
        store.add("t1", "alice", "AAPL", 150.0, enabled=False)
        provider.prices["AAPL"] = 999.0

        report = make_scheduler().run_pass()

        assert report.outcomes == {}
        assert provider.calls == []
        assert notifier.messages == []


# ---------------------------------------------------------------------------
# Missing data and failures
# ---------------------------------------------------------------------------


class TestFailureHandling:
    """Per-threshold failures never abort the pass."""

    def test_no_data_should_not_notify_or_mutate(self, make_scheduler, store, provider, notifier):
        # Arrange: provider has no price for AAPL
        store.add("t1", "alice", "AAPL", 150.0)

        # Act
        report = make_scheduler().run_pass()

        # Assert
        assert report.outcomes["t1"] == ThresholdOutcome.NO_DATA
        assert notifier.messages == []
        assert store.disable_calls == []
        assert store.is_enabled("t1") is True

    def test_enqueue_failure_should_keep_threshold_enabled_until_retry_succeeds(
        self, make_scheduler, store, provider, notifier
    ):
        # Arrange
        store.add("t1", "alice", "AAPL", 150.0)
        provider.prices["AAPL"] = 151.20
        notifier.fail = True
        scheduler = make_scheduler()

        # Act: first pass fails to enqueue
        first = scheduler.run_pass()

        # Assert
        assert first.outcomes["t1"] == ThresholdOutcome.ENQUEUE_FAILED
        assert store.is_enabled("t1") is True
        assert store.disable_calls == []

        # Act: transport recovers, same price
        notifier.fail = False
        second = scheduler.run_pass()

        # Assert
        assert second.outcomes["t1"] == ThresholdOutcome.NOTIFIED
        assert len(notifier.messages) == 1
        assert store.is_enabled("t1") is False

    def test_provider_error_should_not_affect_other_thresholds(
        self, make_scheduler, store, provider, notifier
    ):
        # Arrange: A fails; B belongs to the same user, C to another user
        store.add("a", "alice", "FAIL", 10.0)
        store.add("b", "alice", "AAPL", 150.0)
        store.add("c", "bob", "MSFT", 300.0, ThresholdCondition.BELOW)
        provider.errors["FAIL"] = ChartProviderError("Twelve Data API rate limit exceeded")
        provider.prices.update({"AAPL": 151.2, "MSFT": 290.0})

        # Act
        report = make_scheduler().run_pass()

        # Assert
        assert report.outcomes == {
            "a": ThresholdOutcome.PROVIDER_ERROR,
            "b": ThresholdOutcome.NOTIFIED,
            "c": ThresholdOutcome.NOTIFIED,
        }
        assert sorted(m.to for m in notifier.messages) == ["alice@example.com", "bob@example.com"]
        assert store.is_enabled("a") is True

    def test_unexpected_provider_exception_should_be_reported_as_provider_error(
        self, make_scheduler, store, provider
    ):
        store.add("a", "alice", "AAPL", 150.0)
        provider.errors["AAPL"] = ConnectionResetError("peer reset")

        report = make_scheduler().run_pass()

        assert report.outcomes["a"] == ThresholdOutcome.PROVIDER_ERROR
        assert store.is_enabled("a") is True

    def test_missing_recipient_should_keep_threshold_enabled(
        self, make_scheduler, store, provider, notifier
    ):
        # Arrange: carol has no notification address
        store.add("t1", "carol", "AAPL", 150.0)
        store.add("t2", "alice", "AAPL", 150.0)
        provider.prices["AAPL"] = 151.2

        # Act
        report = make_scheduler().run_pass()

        # Assert
        assert report.outcomes["t1"] == ThresholdOutcome.RECIPIENT_UNRESOLVABLE
        assert report.outcomes["t2"] == ThresholdOutcome.NOTIFIED
        assert store.is_enabled("t1") is True
        assert [m.to for m in notifier.messages] == ["alice@example.com"]

    def test_disable_failure_is_reported_and_may_notify_again(
        self, make_scheduler, store, provider, notifier
    ):
        # Arrange
        store.add("t1", "alice", "AAPL", 150.0)
        provider.prices["AAPL"] = 151.2
        store.fail_disable = True
        scheduler = make_scheduler()

        # Act
        first = scheduler.run_pass()
        second = scheduler.run_pass()

        # Assert: at-least-once: the message was queued on both passes
        assert first.outcomes["t1"] == ThresholdOutcome.DISABLE_FAILED
        assert second.outcomes["t1"] == ThresholdOutcome.DISABLE_FAILED
        assert len(notifier.messages) == 2
        assert store.is_enabled("t1") is True

    def test_malformed_record_should_be_skipped(self, make_scheduler, store, provider, notifier):
        # Arrange
        store.add("bad", "alice", "AAPL", 150.0, condition="sideways")
        store.add("neg", "alice", "AAPL", -1.0)
        store.add("ok", "alice", "AAPL", 150.0)
        provider.prices["AAPL"] = 151.2

        # Act
        report = make_scheduler().run_pass()

        # Assert
        assert report.outcomes["bad"] == ThresholdOutcome.INVALID_RECORD
        assert report.outcomes["neg"] == ThresholdOutcome.INVALID_RECORD
        assert report.outcomes["ok"] == ThresholdOutcome.NOTIFIED
        assert len(notifier.messages) == 1

    def test_store_unavailable_should_abort_pass_but_not_tick(self, make_scheduler, store):
        store.unavailable = True
        scheduler = make_scheduler()

        with pytest.raises(ThresholdStoreUnavailable):
            scheduler.run_pass()

        # tick() swallows and logs; the next tick retries
        scheduler.tick()

        store.unavailable = False
        assert scheduler.run_pass().outcomes == {}


# ---------------------------------------------------------------------------
# Lookup date
# ---------------------------------------------------------------------------


class TestLookupDate:
    """The calendar date is derived once per pass in the reference timezone."""

    def test_should_fetch_with_date_in_reference_timezone(self, make_scheduler, store, provider):
        # Arrange: 02:00 UTC on May 1st is still April 30th in New York
        store.add("t1", "alice", "AAPL", 150.0)
        store.add("t2", "bob", "MSFT", 150.0)
        clock = lambda: datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)  # noqa: E731

        # Act
        report = make_scheduler(clock=clock, tz_name="America/New_York").run_pass()

        # Assert
        assert report.lookup_date == date(2024, 4, 30)
        assert {c[1] for c in provider.calls} == {date(2024, 4, 30)}
        assert {c[2] for c in provider.calls} == {ChartInterval.ONE_MINUTE}

    def test_should_default_to_utc_date(self, make_scheduler):
        assert make_scheduler().lookup_date() == date(2024, 5, 1)


# ---------------------------------------------------------------------------
# Concurrency: non-overlap and pass deadline
# ---------------------------------------------------------------------------


class TestConcurrency:
    """Passes never overlap; a pass past its deadline abandons in-flight work."""

    def test_overlapping_pass_should_be_skipped(self, make_scheduler, store, provider, notifier):
        # Arrange
        store.add("t1", "alice", "SLOW", 10.0)
        provider.prices["SLOW"] = 20.0
        entered, release = provider.block("SLOW")
        scheduler = make_scheduler()
        results = {}

        worker = threading.Thread(target=lambda: results.setdefault("first", scheduler.run_pass()))
        worker.start()
        assert entered.wait(2)

        # Act
        overlapping = scheduler.run_pass()
        release.set()
        worker.join(5)

        # Assert
        assert overlapping.skipped_overlap is True
        assert overlapping.outcomes == {}
        assert results["first"].outcomes["t1"] == ThresholdOutcome.NOTIFIED
        assert len(notifier.messages) == 1

    def test_pass_timeout_should_abandon_slow_threshold_and_keep_it_enabled(
        self, make_scheduler, store, provider, notifier
    ):
        # Arrange
        store.add("slow", "alice", "SLOW", 10.0)
        store.add("fast", "bob", "AAPL", 150.0)
        provider.prices.update({"SLOW": 20.0, "AAPL": 151.2})
        entered, release = provider.block("SLOW")
        scheduler = make_scheduler(pass_timeout_seconds=0.3)

        try:
            # Act: first pass gives up on SLOW
            first = scheduler.run_pass()

            # Assert
            assert entered.is_set()
            assert first.outcomes["slow"] == ThresholdOutcome.ABANDONED
            assert first.outcomes["fast"] == ThresholdOutcome.NOTIFIED
            assert store.is_enabled("slow") is True

            # Act: SLOW is still running, so the next pass must not touch it
            second = scheduler.run_pass()
            assert second.outcomes == {"slow": ThresholdOutcome.IN_FLIGHT}
        finally:
            release.set()

        # The abandoned worker finishes without notifying; a later pass handles it
        report = None
        for _ in range(50):
            report = scheduler.run_pass()
            if report.outcomes.get("slow") != ThresholdOutcome.IN_FLIGHT:
                break
            time.sleep(0.05)

        assert report.outcomes["slow"] == ThresholdOutcome.NOTIFIED
        assert [m.to for m in notifier.messages].count("alice@example.com") == 1
        assert store.is_enabled("slow") is False


# ---------------------------------------------------------------------------
# APScheduler registration
# ---------------------------------------------------------------------------


def test_schedule_should_register_non_overlapping_interval_job(make_scheduler):
    # Arrange
    background = BackgroundScheduler(timezone="UTC")

    # Act
    make_scheduler(interval_seconds=300).schedule(background)

    # Assert
    job = background.get_job(ALERT_JOB_ID)
    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
