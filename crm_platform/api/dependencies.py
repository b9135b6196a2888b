"""
API dependencies for FastAPI dependency injection.

The application factory builds one ServiceContainer per app and keeps it on
app.state; route handlers pull individual services out of it.
"""
import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import Depends, Request

from crm_platform.ai.rule_generator import OpenAIRuleGenerator, RuleGenerator
from crm_platform.lib.db import create_db_engine, create_session_factory, init_db
from crm_platform.lib.logging import get_logger
from crm_platform.lib.metrics import MetricsCollector, get_metrics_collector
from crm_platform.lib.settings import settings
from crm_platform.services.analytics_service import AnalyticsService
from crm_platform.services.audience_service import AudienceSelector
from crm_platform.services.campaign_dispatcher import CampaignDispatcher
from crm_platform.services.customer_service import CustomerService
from crm_platform.services.delivery_queue import DeliveryQueue
from crm_platform.services.delivery_simulator import (
    DeliverySimulator,
    HttpReceiptSink,
    ReceiptSink,
    ReconcilerReceiptSink,
)
from crm_platform.services.receipt_reconciler import ReceiptReconciler
from crm_platform.services.segment_service import SegmentService
from crm_platform.stores import CrmStore, InMemoryStore, SqlAlchemyStore

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    store: CrmStore
    customers: CustomerService
    segments: SegmentService
    audience: AudienceSelector
    reconciler: ReceiptReconciler
    simulator: DeliverySimulator
    queue: DeliveryQueue
    dispatcher: CampaignDispatcher
    analytics: AnalyticsService
    rule_generator: RuleGenerator


def build_store(backend: Optional[str] = None, database_url: Optional[str] = None) -> CrmStore:
    """
    Create the configured store.

    Args:
        backend: "memory" or "sql" (defaults to settings.storage_backend)
        database_url: Overrides settings.database_url for the SQL store
    """
    backend = backend or settings.storage_backend
    if backend == "memory":
        logger.info("Using in-memory store")
        return InMemoryStore()

    engine = create_db_engine(database_url, echo=settings.debug)
    init_db(engine)
    logger.info(f"Using SQL store ({engine.url.get_backend_name()})")
    return SqlAlchemyStore(create_session_factory(engine))


def build_services(
    store: CrmStore,
    rule_generator: Optional[RuleGenerator] = None,
    receipt_sink: Optional[ReceiptSink] = None,
    metrics: Optional[MetricsCollector] = None,
    rng: Optional[random.Random] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ServiceContainer:
    """
    Wire every service around one store.

    The receipt sink defaults to HTTP when settings.receipt_callback_url is
    set, otherwise receipts go straight to the in-process reconciler.
    """
    metrics = metrics or get_metrics_collector()
    rng = rng or random.Random()

    audience = AudienceSelector(store)
    reconciler = ReceiptReconciler(store, metrics=metrics)

    if receipt_sink is None:
        if settings.receipt_callback_url:
            receipt_sink = HttpReceiptSink(settings.receipt_callback_url)
        else:
            receipt_sink = ReconcilerReceiptSink(reconciler)

    simulator = DeliverySimulator(
        store,
        receipt_sink,
        rng=rng,
        sleep=sleep,
        refresh_campaign=reconciler.recompute_campaign_aggregates,
    )
    queue = DeliveryQueue(simulator, rng=rng, sleep=sleep)

    return ServiceContainer(
        store=store,
        customers=CustomerService(store),
        segments=SegmentService(store, audience),
        audience=audience,
        reconciler=reconciler,
        simulator=simulator,
        queue=queue,
        dispatcher=CampaignDispatcher(store, queue, reconciler, audience, metrics),
        analytics=AnalyticsService(store, reconciler),
        rule_generator=rule_generator or OpenAIRuleGenerator(),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_customer_service(services: ServiceContainer = Depends(get_services)) -> CustomerService:
    return services.customers


def get_segment_service(services: ServiceContainer = Depends(get_services)) -> SegmentService:
    return services.segments


def get_dispatcher(services: ServiceContainer = Depends(get_services)) -> CampaignDispatcher:
    return services.dispatcher


def get_reconciler(services: ServiceContainer = Depends(get_services)) -> ReceiptReconciler:
    return services.reconciler


def get_analytics_service(services: ServiceContainer = Depends(get_services)) -> AnalyticsService:
    return services.analytics


def get_rule_generator(services: ServiceContainer = Depends(get_services)) -> RuleGenerator:
    return services.rule_generator
