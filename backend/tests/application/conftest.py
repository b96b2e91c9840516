"""
In-memory fakes for the AlertScheduler collaborators.
"""

import threading
from datetime import date, datetime, timezone
from typing import Optional

import pytest

from application.alert_scheduler import AlertScheduler
from domain.entities import Threshold
from domain.enums import ChartInterval, ThresholdCondition
from domain.exceptions import DisableFailed, NotificationEnqueueFailed, ThresholdStoreUnavailable
from domain.market import AlertMessage, PriceSample, PriceSeries

FIXED_NOW = datetime(2024, 5, 1, 15, 0, tzinfo=timezone.utc)


def _copy(t: Threshold) -> Threshold:
    return Threshold(
        id=t.id,
        owner_id=t.owner_id,
        ticker=t.ticker,
        target=t.target,
        condition=t.condition,
        enabled=t.enabled,
        created_at=t.created_at,
    )


class FakeThresholdStore:
    def __init__(self) -> None:
        self._items: dict[str, Threshold] = {}
        self._lock = threading.Lock()
        self.disable_calls: list[tuple[str, str]] = []
        self.fail_disable = False
        self.unavailable = False

    def add(
        self,
        threshold_id: str,
        owner_id: str,
        ticker: str,
        target: float,
        condition=ThresholdCondition.ABOVE,
        enabled: bool = True,
    ) -> Threshold:
        threshold = Threshold(
            id=threshold_id,
            owner_id=owner_id,
            ticker=ticker,
            target=target,
            condition=condition,
            enabled=enabled,
        )
        with self._lock:
            self._items[threshold_id] = threshold
        return threshold

    def is_enabled(self, threshold_id: str) -> bool:
        with self._lock:
            return self._items[threshold_id].enabled

    def list_all_enabled_grouped_by_user(self) -> dict[str, list[Threshold]]:
        if self.unavailable:
            raise ThresholdStoreUnavailable("database is locked")
        grouped: dict[str, list[Threshold]] = {}
        with self._lock:
            for t in self._items.values():
                if t.enabled:
                    grouped.setdefault(t.owner_id, []).append(_copy(t))
        return grouped

    def disable(self, owner_id: str, threshold_id: str) -> bool:
        with self._lock:
            self.disable_calls.append((owner_id, threshold_id))
            if self.fail_disable:
                raise DisableFailed("write conflict")
            threshold = self._items.get(threshold_id)
            if threshold is None or threshold.owner_id != owner_id:
                return False
            threshold.enabled = False
            return True


class FakeChartProvider:
    """Two bars per symbol; the latest close is the configured price."""

    def __init__(self, prices: Optional[dict[str, Optional[float]]] = None) -> None:
        self.prices: dict[str, Optional[float]] = dict(prices or {})
        self.errors: dict[str, Exception] = {}
        self.blockers: dict[str, tuple[threading.Event, threading.Event]] = {}
        self.calls: list[tuple[str, date, ChartInterval]] = []
        self._lock = threading.Lock()

    def block(self, symbol: str) -> tuple[threading.Event, threading.Event]:
        """Make fetch(symbol) signal `entered` and wait for `release`."""
        entered, release = threading.Event(), threading.Event()
        self.blockers[symbol] = (entered, release)
        return entered, release

    def fetch(self, symbol: str, day: date, interval: ChartInterval) -> PriceSeries:
        with self._lock:
            self.calls.append((symbol, day, interval))
        if symbol in self.blockers:
            entered, release = self.blockers[symbol]
            entered.set()
            release.wait(5)
        if symbol in self.errors:
            raise self.errors[symbol]
        price = self.prices.get(symbol)
        if price is None:
            return PriceSeries.no_data()
        return PriceSeries.from_samples(
            [
                PriceSample(datetime(2024, 5, 1, 14, 59), 1.0, 1.0, 1.0, 1.0, 10.0),
                PriceSample(datetime(2024, 5, 1, 15, 0), price, price, price, price, 10.0),
            ]
        )


class FakeIdentityResolver:
    def __init__(self, addresses: Optional[dict[str, str]] = None) -> None:
        self.addresses = dict(addresses or {})

    def get_notification_address(self, owner_id: str) -> Optional[str]:
        return self.addresses.get(owner_id)


class FakeNotifier:
    def __init__(self) -> None:
        self.messages: list[AlertMessage] = []
        self.fail = False
        self._lock = threading.Lock()

    def enqueue(self, message: AlertMessage) -> int:
        if self.fail:
            raise NotificationEnqueueFailed("SMTP relay unreachable")
        with self._lock:
            self.messages.append(message)
            return len(self.messages)


@pytest.fixture()
def store() -> FakeThresholdStore:
    return FakeThresholdStore()


@pytest.fixture()
def provider() -> FakeChartProvider:
    return FakeChartProvider()


@pytest.fixture()
def identity() -> FakeIdentityResolver:
    return FakeIdentityResolver({"alice": "alice@example.com", "bob": "bob@example.com"})


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def make_scheduler(store, provider, identity, notifier):
    def _make(**kwargs) -> AlertScheduler:
        kwargs.setdefault("clock", lambda: FIXED_NOW)
        kwargs.setdefault("max_workers", 4)
        kwargs.setdefault("pass_timeout_seconds", 5)
        return AlertScheduler(store, provider, identity, notifier, **kwargs)

    return _make
