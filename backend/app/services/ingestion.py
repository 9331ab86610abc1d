"""Synchronizes subscriptions, resources and metrics from Azure into the store."""

import uuid
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.crud import cloud_resource as cloud_resource_crud
from app.crud import cloud_subscription as cloud_subscription_crud
from app.providers.azure import (
    APP_SERVICE_PLAN_TYPE,
    SQL_DATABASE_TYPE,
    VIRTUAL_MACHINE_TYPE,
    AzureAPIError,
    AzureClient,
)
from app.services.connections import create_azure_client, resolve_azure_connection

logger = structlog.get_logger()

AzureClientFactory = Callable[..., AzureClient]


async def ingest_subscriptions(
    db: AsyncSession,
    org_id: uuid.UUID,
    client_factory: AzureClientFactory = create_azure_client,
) -> int:
    """
    Store the subscriptions the connection can see; forget the ones it no longer can.

    Returns:
        Number of subscriptions stored
    """
    credentials = await resolve_azure_connection(db, org_id)
    azure = client_factory(credentials)

    seen: set[str] = set()
    for subscription in await azure.list_subscriptions():
        if not subscription.subscription_id:
            continue
        seen.add(subscription.subscription_id)
        await cloud_subscription_crud.upsert_subscription(
            db,
            organization_id=org_id,
            subscription_id=subscription.subscription_id,
            name=subscription.display_name,
        )

    removed = await cloud_subscription_crud.delete_subscriptions_not_in(db, org_id, seen)
    logger.info(
        "ingestion.subscriptions_synced",
        organization_id=str(org_id),
        synced=len(seen),
        removed=removed,
    )
    return len(seen)


async def ingest_resources(
    db: AsyncSession,
    org_id: uuid.UUID,
    client_factory: AzureClientFactory = create_azure_client,
) -> int:
    """
    Store every resource of every known subscription.

    A subscription that cannot be listed is skipped. Stale resources are deleted
    only when at least one resource was seen, so an outage never empties the store.

    Returns:
        Number of resources stored
    """
    credentials = await resolve_azure_connection(db, org_id)
    subscriptions = await cloud_subscription_crud.get_subscriptions(db, org_id)
    if not subscriptions:
        return 0

    seen: set[str] = set()
    for subscription in subscriptions:
        azure = client_factory(credentials, subscription.subscription_id)
        try:
            resources = await azure.list_resources()
        except AzureAPIError as e:
            logger.error(
                "ingestion.resources_list_failed",
                organization_id=str(org_id),
                subscription_id=subscription.subscription_id,
                status_code=e.status_code,
                error=str(e),
            )
            continue

        for resource in resources:
            if not resource.id:
                continue
            seen.add(resource.id)
            await cloud_resource_crud.upsert_resource(
                db,
                organization_id=org_id,
                subscription_id=subscription.subscription_id,
                resource_id=resource.id,
                name=resource.name,
                resource_type=resource.type,
                resource_group=resource.resource_group,
                location=resource.location,
                tags=resource.tags,
            )

    if seen:
        removed = await cloud_resource_crud.delete_resources_not_in(db, org_id, seen)
        logger.info(
            "ingestion.resources_synced",
            organization_id=str(org_id),
            synced=len(seen),
            removed=removed,
        )
    return len(seen)


async def _fetch_cpu_metrics(azure: AzureClient, resource_id: str, resource_type: str) -> dict[str, float | None] | None:
    lookback_days = settings.METRICS_LOOKBACK_DAYS
    resource_type = resource_type.lower()
    if resource_type == VIRTUAL_MACHINE_TYPE.lower():
        return {"cpuAverage": await azure.get_vm_cpu_average(resource_id, lookback_days)}
    if resource_type == SQL_DATABASE_TYPE.lower():
        return {"avgCpu": await azure.get_sql_utilization(resource_id, lookback_days)}
    if resource_type == APP_SERVICE_PLAN_TYPE.lower():
        return {"avgCpu": await azure.get_app_service_cpu(resource_id, lookback_days)}
    return None


async def ingest_metrics(
    db: AsyncSession,
    org_id: uuid.UUID,
    client_factory: AzureClientFactory = create_azure_client,
) -> int:
    """
    Refresh month-to-date cost and, for compute-like resources, the CPU average.

    Failures are logged per resource; the resource keeps its previous values.

    Returns:
        Number of resources updated
    """
    credentials = await resolve_azure_connection(db, org_id)
    resources = await cloud_resource_crud.get_resources(db, org_id)

    clients: dict[str, AzureClient] = {}
    updated = 0
    for resource in resources:
        if resource.subscription_id not in clients:
            clients[resource.subscription_id] = client_factory(credentials, resource.subscription_id)
        azure = clients[resource.subscription_id]

        cost_monthly = None
        try:
            cost_monthly = await azure.estimate_resource_monthly_cost(resource.resource_id)
        except AzureAPIError as e:
            logger.warning(
                "ingestion.cost_failed",
                organization_id=str(org_id),
                resource_id=resource.resource_id,
                error=str(e),
            )

        metrics = None
        try:
            fetched = await _fetch_cpu_metrics(azure, resource.resource_id, resource.type)
        except AzureAPIError as e:
            logger.warning(
                "ingestion.metrics_failed",
                organization_id=str(org_id),
                resource_id=resource.resource_id,
                error=str(e),
            )
        else:
            if fetched is not None:
                metrics = {**(resource.metrics or {}), **fetched}

        if cost_monthly is None and metrics is None:
            continue

        await cloud_resource_crud.update_resource(
            db, resource, metrics=metrics, cost_monthly=cost_monthly
        )
        updated += 1

    logger.info("ingestion.metrics_synced", organization_id=str(org_id), updated=updated)
    return updated
