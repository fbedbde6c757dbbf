"""
Service wiring.
Builds the orchestrator and action service with their shared components.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fraud_triage.actions.service import ActionService
from fraud_triage.agent.graph import TriageOrchestrator
from fraud_triage.agent.nodes import WorkflowContext
from fraud_triage.compliance.cache import TTLCache
from fraud_triage.compliance.validator import ComplianceValidator
from fraud_triage.config import settings
from fraud_triage.demo_data.seed import DemoProviders, seed_providers
from fraud_triage.guardrails.enforcement import RegexPiiDetector
from fraud_triage.metrics.service import MetricsService
from fraud_triage.tools.circuit_breaker import CircuitBreakerRegistry
from fraud_triage.tools.executor import StepExecutor

logger = logging.getLogger(__name__)


@dataclass
class TriageServices:
    orchestrator: TriageOrchestrator
    actions: ActionService
    breakers: CircuitBreakerRegistry
    metrics: MetricsService
    providers: DemoProviders


def build_services(
    clock: Callable[[], float] = time.monotonic,
    now: Optional[datetime] = None,
    providers: Optional[DemoProviders] = None,
) -> TriageServices:
    """
    Wire providers, breakers, caches and metrics into the services.

    Args:
        clock: Monotonic clock shared by breakers and caches
        now: Reference time for the demo transaction history
        providers: Pre-built providers; seeded demo providers when omitted

    Returns:
        TriageServices sharing one breaker registry and metrics service
    """
    providers = providers if providers is not None else seed_providers(now=now)
    metrics = MetricsService()
    breakers = CircuitBreakerRegistry(
        failure_threshold=settings.circuit_breaker_failure_threshold,
        cooldown_seconds=settings.circuit_breaker_cooldown_seconds,
        clock=clock,
    )

    context = WorkflowContext(
        profiles=providers.profiles,
        transactions=providers.transactions,
        risk=providers.risk,
        knowledge_base=providers.knowledge_base,
        merchants=providers.merchants,
        kb_cache=TTLCache(ttl_seconds=settings.kb_cache_ttl_seconds, clock=clock),
        default_window_days=settings.default_transaction_window_days,
    )
    orchestrator = TriageOrchestrator(
        context=context,
        executor=StepExecutor(breakers, metrics, default_timeout_ms=settings.step_timeout_ms),
        pii_detector=RegexPiiDetector(replacement=settings.pii_replacement),
    )
    actions = ActionService(
        compliance=ComplianceValidator(clock=clock),
        metrics=metrics,
        otp_cache=TTLCache(ttl_seconds=settings.otp_ttl_seconds, clock=clock),
    )

    logger.info("Triage services initialized")
    return TriageServices(
        orchestrator=orchestrator,
        actions=actions,
        breakers=breakers,
        metrics=metrics,
        providers=providers,
    )
