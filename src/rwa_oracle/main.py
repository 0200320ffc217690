"""Entry point for the RWA funding oracle.

Wires all components together, optionally serves the HTTP API, and runs
the background workers. When the API is enabled (default) the workers and
the API share one asyncio event loop via uvicorn's programmatic API and
FastAPI's lifespan context manager.

Component wiring order (in _build_components):
1. OracleDatabase and typed stores
2. Provider clients (one per configured vendor)
3. PriceAggregator, CorporateActionRegistry, PriceAdjuster
4. EquityPriceService, VolatilityService, LiquidityService
5. MarkPriceSource (synthetic or ccxt)
6. FundingRateEngine
7. RiskWindowService, RiskAssessor, RecommendationEngine
8. PublisherFactory
9. Workers (publish, corporate-action refresh, risk update)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from rwa_oracle.chain.factory import PublisherFactory
from rwa_oracle.config import AppSettings
from rwa_oracle.corporate_actions.adjustment import PriceAdjuster
from rwa_oracle.corporate_actions.registry import CorporateActionRegistry
from rwa_oracle.data import (
    CorporateActionStore,
    FundingRateStore,
    OracleDatabase,
    PriceStore,
    RiskStore,
)
from rwa_oracle.funding.engine import FundingRateEngine
from rwa_oracle.logging import get_logger, setup_logging
from rwa_oracle.market_data.aggregator import PriceAggregator
from rwa_oracle.market_data.liquidity import LiquidityService
from rwa_oracle.market_data.mark_price import (
    CcxtMarkPriceSource,
    MarkPriceSource,
    SyntheticMarkPriceSource,
)
from rwa_oracle.market_data.price_service import EquityPriceService
from rwa_oracle.market_data.volatility import VolatilityService
from rwa_oracle.providers import build_providers
from rwa_oracle.risk.assessment import RiskAssessor
from rwa_oracle.risk.recommendations import RecommendationEngine
from rwa_oracle.risk.windows import RiskWindowService
from rwa_oracle.scheduler import (
    CorporateActionRefreshWorker,
    FundingRatePublishWorker,
    RiskUpdateWorker,
)


async def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all oracle components from settings.

    Note: Does NOT open connections (database, HTTP sessions, exchange);
    that happens in _start_components.

    Raises:
        ConfigurationError: Publisher or mark-price configuration is invalid.
    """
    logger = get_logger("rwa_oracle.main")

    database = OracleDatabase(settings.database.path)
    price_store = PriceStore(database)
    action_store = CorporateActionStore(database)
    funding_store = FundingRateStore(database)
    risk_store = RiskStore(database)

    providers = build_providers(settings.providers)
    if not providers:
        logger.warning("no_market_data_providers", note="Every price request will fail with no_data")
    timeout = settings.providers.request_timeout_seconds

    aggregator = PriceAggregator(providers, settings.price, timeout_seconds=timeout)
    registry = CorporateActionRegistry(
        providers, action_store, settings.corporate_actions, timeout_seconds=timeout
    )
    adjuster = PriceAdjuster(registry, price_store)
    price_service = EquityPriceService(aggregator, adjuster, price_store, settings.price)
    volatility_service = VolatilityService(price_store, adjuster)
    liquidity_service = LiquidityService(price_store, settings.funding.default_liquidity_score)

    mark_source: MarkPriceSource
    if settings.mark_price.source == "ccxt":
        mark_source = CcxtMarkPriceSource(settings.mark_price)
    else:
        mark_source = SyntheticMarkPriceSource(price_service)

    funding_engine = FundingRateEngine(
        price_service,
        mark_source,
        registry,
        volatility_service,
        liquidity_service,
        funding_store,
        settings.funding,
    )

    window_service = RiskWindowService(
        registry, volatility_service, liquidity_service, risk_store, settings.risk
    )
    risk_assessor = RiskAssessor(window_service, funding_engine, settings.risk, settings.funding)
    recommendation_engine = RecommendationEngine(risk_store, settings.risk)

    publishers = PublisherFactory.from_settings(settings.publisher)

    symbols = settings.publisher.tracked_symbols
    grace = settings.publisher.stop_grace_seconds
    workers = [
        FundingRatePublishWorker(funding_engine, publishers, settings.publisher),
        CorporateActionRefreshWorker(
            registry, symbols, settings.corporate_actions.refresh_interval_minutes, grace
        ),
        RiskUpdateWorker(window_service, symbols, settings.risk.update_interval_minutes, grace),
    ]

    logger.info(
        "components_built",
        providers=[p.name for p in providers],
        mark_source=settings.mark_price.source,
        publishers=[p.provider_type.value for p in publishers.get_all_publishers()],
        tracked_symbols=symbols,
    )

    return {
        "database": database,
        "providers": providers,
        "price_service": price_service,
        "registry": registry,
        "adjuster": adjuster,
        "mark_source": mark_source,
        "funding_engine": funding_engine,
        "window_service": window_service,
        "risk_assessor": risk_assessor,
        "recommendation_engine": recommendation_engine,
        "publishers": publishers,
        "workers": workers,
    }


async def _start_components(components: dict[str, Any]) -> None:
    """Open connections, then start workers."""
    await components["database"].connect()
    for provider in components["providers"]:
        await provider.connect()
    await components["mark_source"].connect()
    await components["publishers"].connect()
    for worker in components["workers"]:
        await worker.start()


async def _stop_components(components: dict[str, Any]) -> None:
    """Stop workers first, then close everything _start_components opened."""
    for worker in components["workers"]:
        await worker.stop()
    await components["publishers"].close()
    await components["mark_source"].close()
    for provider in components["providers"]:
        await provider.close()
    await components["database"].close()


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Register SIGINT/SIGTERM to request a graceful shutdown."""
    logger = get_logger("rwa_oracle.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores services on app.state, opens connections, starts workers.
    On shutdown: stops workers, closes connections.
    """
    logger = get_logger("rwa_oracle.main")
    components = app.state.components

    # Store services on app.state for route handler access
    app.state.price_service = components["price_service"]
    app.state.registry = components["registry"]
    app.state.funding_engine = components["funding_engine"]
    app.state.risk_assessor = components["risk_assessor"]
    app.state.recommendation_engine = components["recommendation_engine"]
    app.state.publishers = components["publishers"]

    await _start_components(components)
    logger.info("lifespan_started")

    yield

    await _stop_components(components)
    logger.info("rwa_oracle_stopped")


async def run() -> None:
    """Run the oracle.

    When the API is enabled (API_ENABLED=true, the default) uvicorn serves
    the app and the lifespan manages startup/shutdown. Otherwise the workers
    run headless until SIGINT/SIGTERM.
    """
    settings = AppSettings()

    setup_logging(settings.log_level)
    logger = get_logger("rwa_oracle.main")

    components = await _build_components(settings)

    if settings.api.enabled:
        from rwa_oracle.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info("starting_with_api", host=settings.api.host, port=settings.api.port)

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        stop_event = asyncio.Event()
        _setup_signal_handlers(stop_event)
        logger.info("starting_headless", tracked_symbols=settings.publisher.tracked_symbols)

        try:
            await _start_components(components)
            await stop_event.wait()
        finally:
            await _stop_components(components)
            logger.info("rwa_oracle_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
