"""
Shared test fixtures — TestClient, in-memory SQLite, mock chart provider.
"""

import os
import tempfile

# Set environment variables BEFORE any app imports to avoid writing under ./data
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "threshold_alerts_test_logs"))
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["ALERT_SCHEDULER_ENABLED"] = "false"

from collections.abc import Generator  # noqa: E402
from datetime import date, datetime, timezone  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from api.indices_routes import get_chart_provider, get_reference_client  # noqa: E402
from domain.enums import ChartInterval  # noqa: E402
from domain.exceptions import ReferenceDataError  # noqa: E402
from domain.market import PriceSample, PriceSeries, TickerInfo  # noqa: E402
from infrastructure.database import get_session  # noqa: E402
from main import app  # noqa: E402

# ---------------------------------------------------------------------------
# In-memory SQLite engine with StaticPool (shared single connection)
# ---------------------------------------------------------------------------

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def _override_get_session() -> Generator[Session, None, None]:
    with Session(test_engine) as session:
        yield session


# ---------------------------------------------------------------------------
# Mock external services — chart provider
# ---------------------------------------------------------------------------

class StubChartProvider:
    """Returns two 1-minute bars for AAPL; every other symbol has no data."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, date, ChartInterval]] = []

    def fetch(self, symbol: str, day: date, interval: ChartInterval) -> PriceSeries:
        self.calls.append((symbol, day, interval))
        if symbol != "AAPL":
            return PriceSeries.no_data()
        return PriceSeries.from_samples(
            [
                PriceSample(datetime(2024, 5, 1, 13, 31, tzinfo=timezone.utc), 150.0, 151.0, 149.5, 150.5, 1000.0),
                PriceSample(datetime(2024, 5, 1, 13, 30, tzinfo=timezone.utc), 149.0, 150.2, 148.8, 150.0, 1200.0),
            ]
        )


class StubReferenceClient:
    """Returns canned Polygon results; `fail_overview` simulates a rate-limited overview."""

    def __init__(self) -> None:
        self.fail_overview = False
        self.search_calls: list[tuple[str, int]] = []

    def search_tickers(self, search: str = "", limit: int = 10) -> list[TickerInfo]:
        self.search_calls.append((search, limit))
        tickers = [
            TickerInfo("AAPL", "Apple Inc.", "stocks", "us", "XNAS", True),
            TickerInfo("AAL", "American Airlines Group Inc.", "stocks", "us", "XNAS", True),
        ]
        return [t for t in tickers if t.ticker.startswith(search.upper())][:limit]

    def get_overview(self, symbol: str, day: Optional[date] = None) -> dict:
        if self.fail_overview:
            raise ReferenceDataError("Polygon API rate limit exceeded")
        return {
            "ticker": symbol,
            "name": "Apple Inc.",
            "market": "stocks",
            "locale": "us",
            "primary_exchange": "XNAS",
            "market_cap": 2.9e12,
            "branding": {"logo_url": "https://example.com/logo.svg"},
            "sic_code": "3571",
        }


@pytest.fixture(scope="session", autouse=True)
def _create_tables():
    """Create all tables once for the test session."""
    import domain.entities  # noqa: F401 register models with SQLModel

    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def _clean_tables():
    """Truncate all tables between tests for isolation."""
    yield
    with Session(test_engine) as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            session.exec(table.delete())  # type: ignore[arg-type]
        session.commit()


@pytest.fixture()
def db_engine():
    """The shared in-memory engine, for adapter-level tests."""
    return test_engine


@pytest.fixture()
def session() -> Generator[Session, None, None]:
    with Session(test_engine) as s:
        yield s


@pytest.fixture()
def chart_provider() -> StubChartProvider:
    return StubChartProvider()


@pytest.fixture()
def reference_client() -> StubReferenceClient:
    return StubReferenceClient()


@pytest.fixture()
def client(chart_provider, reference_client) -> Generator[TestClient, None, None]:
    """TestClient with overridden DB session and stubbed market-data clients."""
    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[get_chart_provider] = lambda: chart_provider
    app.dependency_overrides[get_reference_client] = lambda: reference_client

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
