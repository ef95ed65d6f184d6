"""
Configuration helper - wires the accounting engine from settings

Usage:
    from fleet_accounting.config_helper import create_orchestrator

    orchestrator = create_orchestrator()
    orchestrator.on_load_delivered("load-123")
"""

import logging
from typing import Any, Dict, Optional

from fleet_accounting.orchestrators import AccountingOrchestrator, OrchestratorConfig
from fleet_accounting.repositories import AccountingRepository, MySQLAccountingRepository
from fleet_accounting.services import (
    HttpDistanceResolver,
    MySQLTruckLocks,
    TableDistanceResolver,
    TruckLockRegistry,
)
from fleet_accounting.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def get_db_config(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Get MySQL connection config in format expected by repositories.

    Returns:
        Dict with keys: host, port, user, password, database, charset, autocommit
    """
    settings = settings or get_settings()
    return settings.database.get_connection_dict()


def create_distance_resolver(settings: Optional[Settings] = None):
    """HTTP resolver when DISTANCE_SERVICE_URL is set, built-in route table otherwise."""
    settings = settings or get_settings()
    if settings.distance.service_url:
        logger.info(f"Distance resolver: {settings.distance.service_url}")
        return HttpDistanceResolver(
            settings.distance.service_url, timeout=settings.distance.timeout_seconds
        )
    logger.info("Distance resolver: built-in route table")
    return TableDistanceResolver()


def create_orchestrator_config(settings: Optional[Settings] = None) -> OrchestratorConfig:
    settings = settings or get_settings()
    accounting, distance = settings.accounting, settings.distance
    return OrchestratorConfig(
        standard_weekly_miles=accounting.standard_weekly_miles,
        display_decimals=accounting.display_decimals,
        lock_timeout_seconds=accounting.lock_timeout_seconds,
        max_pipeline_retries=accounting.max_pipeline_retries,
        retry_base_delay_seconds=accounting.retry_base_delay_seconds,
        breaker_failure_threshold=distance.breaker_failure_threshold,
        breaker_reset_seconds=distance.breaker_reset_seconds,
    )


def create_orchestrator(
    settings: Optional[Settings] = None,
    repository: Optional[AccountingRepository] = None,
    distance_resolver=None,
    clock=None,
) -> AccountingOrchestrator:
    """
    Create the orchestrator with every dependency resolved.

    Args:
        settings: Settings (global settings if None)
        repository: Injected repository; MySQL repository from settings if None
        distance_resolver: Injected resolver; see create_distance_resolver
        clock: Injected clock; datetime.now if None

    Returns:
        AccountingOrchestrator
    """
    settings = settings or get_settings()
    for warning in settings.validate():
        logger.warning(warning)

    config = create_orchestrator_config(settings)
    kwargs: Dict[str, Any] = {}
    if clock is not None:
        kwargs["clock"] = clock

    if repository is None:
        db_config = get_db_config(settings)
        repository = MySQLAccountingRepository(db_config, **kwargs)
        locks = MySQLTruckLocks(db_config, timeout_seconds=config.lock_timeout_seconds)
    else:
        locks = TruckLockRegistry(config.lock_timeout_seconds)

    return AccountingOrchestrator(
        repository,
        distance_resolver=distance_resolver or create_distance_resolver(settings),
        config=config,
        locks=locks,
        **kwargs,
    )
