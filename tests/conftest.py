"""
Pytest fixtures and configuration for testing.
"""

from datetime import datetime, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fraud_triage.demo_data.seed import DemoProviders, seed_providers
from fraud_triage.main import create_app
from fraud_triage.metrics.service import MetricsService
from fraud_triage.services import TriageServices, build_services
from fraud_triage.tools.circuit_breaker import CircuitBreakerRegistry
from fraud_triage.tools.executor import StepExecutor

# Fixed reference time so demo transaction windows are reproducible
FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breakers(clock: FakeClock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(failure_threshold=3, cooldown_seconds=30, clock=clock)


@pytest.fixture
def metrics() -> MetricsService:
    return MetricsService()


@pytest.fixture
def executor(breakers: CircuitBreakerRegistry, metrics: MetricsService) -> StepExecutor:
    return StepExecutor(breakers, metrics, default_timeout_ms=1000)


@pytest.fixture
def providers() -> DemoProviders:
    """Providers seeded with synthetic demo data."""
    return seed_providers(now=FIXED_NOW)


@pytest.fixture
def services(clock: FakeClock, providers: DemoProviders) -> TriageServices:
    return build_services(clock=clock, providers=providers)


@pytest.fixture
def orchestrator(services: TriageServices):
    return services.orchestrator


@pytest_asyncio.fixture
async def test_client(services: TriageServices) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    app = create_app(services)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
