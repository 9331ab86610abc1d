"""Azure rule catalog."""

from app.crud import cloud_subscription as cloud_subscription_crud
from app.providers.azure import (
    APP_SERVICE_PLAN_TYPE,
    LOAD_BALANCER_TYPE,
    MANAGED_DISK_TYPE,
    PUBLIC_IP_TYPE,
    SQL_DATABASE_TYPE,
    STORAGE_ACCOUNT_TYPE,
    VIRTUAL_MACHINE_TYPE,
)
from app.rules.helpers import (
    age_in_days,
    define_rule,
    describe_percentage,
    format_currency,
    get_resource_metric,
    get_resource_number,
    get_resource_tag,
    live_metric_or_cached,
    load_resource_map,
    load_resources,
    parse_iso_date,
    read_number,
    read_string,
)
from app.rules.types import RecommendationPayload, RuleContext
from app.services.savings import (
    LOAD_BALANCER_MONTHLY_COST,
    PUBLIC_IP_MONTHLY_COST,
    estimate_savings,
    recommended_tier_for,
)

# Tag/metric aliases, probed in order
VM_SIZE_TAGS = ("azure:vmSize", "vmSize", "VMSize", "sku", "skuName")
VM_CPU_METRICS = ("cpuAverage", "avgCpu", "p95Cpu")
DISK_SKU_TAGS = ("sku", "skuName", "skuTier", "storageAccountType")
DISK_IOPS_METRICS = ("avgConsumedIops", "iopsAverage", "iopsP95")
SQL_SKU_TAGS = ("sku", "skuName", "edition", "serviceObjective")
SQL_CPU_METRICS = ("avgCpu", "cpuAverage")
APP_SERVICE_SKU_TAGS = ("sku", "skuName", "tier")
APP_SERVICE_CPU_METRICS = ("avgCpu", "cpuAverage")
STORAGE_TIER_TAGS = ("accessTier", "AccessTier", "defaultAccessTier")
STORAGE_INACTIVE_METRICS = ("daysSinceLastAccess", "inactiveDays", "lastAccessedDaysAgo")
STORAGE_SIZE_METRICS = ("totalStorageGb", "sizeGb")

# Share of subscription spend typically recoverable through commitments
SUBSCRIPTION_SAVINGS_RATE = 0.12


@define_rule(
    "azure.vm.rightsize",
    "Right-size underutilized virtual machines",
    {"cpuPercent": 20, "lookbackDays": 30, "minImpact": 25},
)
async def vm_rightsize(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    lookback_days = thresholds["lookbackDays"]
    cpu_limit = thresholds["cpuPercent"]
    min_impact = thresholds["minImpact"]

    recommendations = []
    for vm in await load_resources(ctx.db, ctx.org_id, VIRTUAL_MACHINE_TYPE):
        current_sku = get_resource_tag(vm, VM_SIZE_TAGS) or read_string((vm.metrics or {}).get("vmSize"))
        target_sku = recommended_tier_for("vm", current_sku)
        if not current_sku or not target_sku:
            continue

        cpu_average = await live_metric_or_cached(
            lambda: ctx.azure.get_vm_cpu_average(vm.resource_id, lookback_days),
            vm,
            VM_CPU_METRICS,
        )
        if cpu_average is None or cpu_average > cpu_limit:
            continue

        impact = estimate_savings("vm", current_sku, target_sku)
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Right-size {vm.name}",
                description=(
                    f"Average CPU usage for {vm.name} was {describe_percentage(cpu_average)} over the "
                    f"last {lookback_days:g} days. Downgrading to {target_sku} can cut costs while "
                    "staying within utilization thresholds."
                ),
                impact_monthly=impact,
                confidence=0.6,
                details={
                    "resourceId": vm.resource_id,
                    "subscriptionId": vm.subscription_id,
                    "currentSku": current_sku,
                    "targetSku": target_sku,
                    "cpuAverage": cpu_average,
                    "lookbackDays": lookback_days,
                    "action": "resizeVm",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.vm.idle",
    "Shut down idle virtual machines",
    {"cpuPercent": 5, "lookbackDays": 14, "minImpact": 20},
)
async def vm_idle(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    lookback_days = thresholds["lookbackDays"]
    cpu_limit = thresholds["cpuPercent"]
    min_impact = thresholds["minImpact"]

    recommendations = []
    for vm in await load_resources(ctx.db, ctx.org_id, VIRTUAL_MACHINE_TYPE):
        cpu_average = await live_metric_or_cached(
            lambda: ctx.azure.get_vm_cpu_average(vm.resource_id, lookback_days),
            vm,
            VM_CPU_METRICS,
        )
        if cpu_average is None or cpu_average > cpu_limit:
            continue

        # Deallocating saves the whole compute bill; without a known cost assume the floor
        impact = vm.cost_monthly if vm.cost_monthly is not None else min_impact
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Stop idle VM {vm.name}",
                description=(
                    f"{vm.name} averaged {describe_percentage(cpu_average)} CPU utilization in the past "
                    f"{lookback_days:g} days. Consider deallocating it to avoid compute charges when idle."
                ),
                impact_monthly=impact,
                confidence=0.5,
                details={
                    "resourceId": vm.resource_id,
                    "subscriptionId": vm.subscription_id,
                    "cpuAverage": cpu_average,
                    "lookbackDays": lookback_days,
                    "action": "deallocateVm",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.disk.unattached",
    "Remove unattached managed disks",
    {"minAgeDays": 7, "minImpact": 10},
)
async def disk_unattached(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    min_age_days = thresholds["minAgeDays"]
    min_impact = thresholds["minImpact"]

    disk_map = await load_resource_map(ctx.db, ctx.org_id, MANAGED_DISK_TYPE)

    recommendations = []
    for disk in await ctx.azure.list_unattached("disk"):
        resource = disk_map.get(disk.id.lower())
        if resource is None:
            continue

        sku = read_string(disk.sku) or get_resource_tag(resource, DISK_SKU_TAGS)
        target_sku = recommended_tier_for("disk", sku)
        size_gb = read_number(disk.disk_size_gb)
        if size_gb is None:
            size_gb = get_resource_number(resource, ("sizeGb",), ("diskSizeGb",))

        created_at = parse_iso_date(disk.time_created)
        if created_at is not None and age_in_days(created_at) < min_age_days:
            continue

        if sku and target_sku:
            impact = estimate_savings("disk", sku, target_sku, size_gb)
        else:
            impact = resource.cost_monthly or 0.0
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Delete unattached disk {resource.name}",
                description=(
                    f"{resource.name} is unattached and has been idle for more than {min_age_days:g} days. "
                    "Removing it or moving it to a lower tier saves costs immediately."
                ),
                impact_monthly=impact,
                confidence=0.7,
                details={
                    "resourceId": resource.resource_id,
                    "subscriptionId": resource.subscription_id,
                    "sku": sku,
                    "targetSku": target_sku,
                    "sizeGb": size_gb,
                    "action": "deleteDisk",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.disk.premium-downgrade",
    "Downgrade over-provisioned premium disks",
    {"maxConsumedIops": 300, "minImpact": 15},
)
async def disk_premium_downgrade(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    max_iops = thresholds["maxConsumedIops"]
    min_impact = thresholds["minImpact"]

    recommendations = []
    for disk in await load_resources(ctx.db, ctx.org_id, MANAGED_DISK_TYPE):
        sku = get_resource_tag(disk, ("sku", "skuName", "storageAccountType"))
        if not sku or not sku.startswith("Premium"):
            continue

        consumed_iops = get_resource_metric(disk, DISK_IOPS_METRICS)
        if consumed_iops is None or consumed_iops > max_iops:
            continue

        target_sku = recommended_tier_for("disk", sku)
        if not target_sku:
            continue

        size_gb = get_resource_number(disk, ("sizeGb", "diskSizeGb"), ("diskSizeGb",))
        impact = estimate_savings("disk", sku, target_sku, size_gb)
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Move disk {disk.name} to {target_sku}",
                description=(
                    f"{disk.name} averages {consumed_iops:.0f} IOPS. Downgrading from {sku} to "
                    f"{target_sku} keeps headroom while reducing spend."
                ),
                impact_monthly=impact,
                confidence=0.55,
                details={
                    "resourceId": disk.resource_id,
                    "subscriptionId": disk.subscription_id,
                    "sku": sku,
                    "targetSku": target_sku,
                    "consumedIops": consumed_iops,
                    "sizeGb": size_gb,
                    "action": "updateDiskSku",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.sql.rightsize",
    "Right-size low-utilization SQL databases",
    {"cpuPercent": 25, "lookbackDays": 30, "minImpact": 30},
)
async def sql_rightsize(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    lookback_days = thresholds["lookbackDays"]
    cpu_limit = thresholds["cpuPercent"]
    min_impact = thresholds["minImpact"]

    recommendations = []
    for database in await load_resources(ctx.db, ctx.org_id, SQL_DATABASE_TYPE):
        cpu_average = await live_metric_or_cached(
            lambda: ctx.azure.get_sql_utilization(database.resource_id, lookback_days),
            database,
            SQL_CPU_METRICS,
        )
        if cpu_average is None or cpu_average > cpu_limit:
            continue

        current_sku = get_resource_tag(database, SQL_SKU_TAGS)
        target_sku = recommended_tier_for("sql", current_sku)
        if not current_sku or not target_sku:
            continue

        impact = estimate_savings("sql", current_sku, target_sku)
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Right-size database {database.name}",
                description=(
                    f"{database.name} averaged {describe_percentage(cpu_average)} CPU utilization over "
                    f"{lookback_days:g} days. Scaling down to {target_sku} keeps utilization within "
                    f"{cpu_limit:g}% while saving costs."
                ),
                impact_monthly=impact,
                confidence=0.6,
                details={
                    "resourceId": database.resource_id,
                    "subscriptionId": database.subscription_id,
                    "currentSku": current_sku,
                    "targetSku": target_sku,
                    "cpuAverage": cpu_average,
                    "lookbackDays": lookback_days,
                    "action": "resizeSqlDatabase",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.appservice.rightsize",
    "Right-size App Service plans",
    {"cpuPercent": 20, "lookbackDays": 21, "minImpact": 20},
)
async def app_service_rightsize(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    lookback_days = thresholds["lookbackDays"]
    cpu_limit = thresholds["cpuPercent"]
    min_impact = thresholds["minImpact"]

    recommendations = []
    for plan in await load_resources(ctx.db, ctx.org_id, APP_SERVICE_PLAN_TYPE):
        cpu_average = await live_metric_or_cached(
            lambda: ctx.azure.get_app_service_cpu(plan.resource_id, lookback_days),
            plan,
            APP_SERVICE_CPU_METRICS,
        )
        if cpu_average is None or cpu_average > cpu_limit:
            continue

        current_sku = get_resource_tag(plan, APP_SERVICE_SKU_TAGS)
        target_sku = recommended_tier_for("app_service", current_sku)
        if not current_sku or not target_sku:
            continue

        impact = estimate_savings("app_service", current_sku, target_sku)
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Right-size App Service plan {plan.name}",
                description=(
                    f"{plan.name} averaged {describe_percentage(cpu_average)} CPU in the last "
                    f"{lookback_days:g} days. Switching from {current_sku} to {target_sku} retains "
                    "buffer while lowering costs."
                ),
                impact_monthly=impact,
                confidence=0.55,
                details={
                    "resourceId": plan.resource_id,
                    "subscriptionId": plan.subscription_id,
                    "currentSku": current_sku,
                    "targetSku": target_sku,
                    "cpuAverage": cpu_average,
                    "lookbackDays": lookback_days,
                    "action": "resizeAppServicePlan",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.storage.cool-tier",
    "Move infrequently accessed storage to cool tier",
    {"minInactiveDays": 30, "minImpact": 15},
)
async def storage_cool_tier(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    min_inactive_days = thresholds["minInactiveDays"]
    min_impact = thresholds["minImpact"]

    recommendations = []
    for account in await load_resources(ctx.db, ctx.org_id, STORAGE_ACCOUNT_TYPE):
        access_tier = get_resource_tag(account, STORAGE_TIER_TAGS)
        target_tier = recommended_tier_for("storage", access_tier)
        if not access_tier or not target_tier:
            continue

        inactive_days = get_resource_metric(account, STORAGE_INACTIVE_METRICS)
        if inactive_days is None or inactive_days < min_inactive_days:
            continue

        total_storage_gb = get_resource_metric(account, STORAGE_SIZE_METRICS)
        impact = estimate_savings("storage", access_tier, target_tier, total_storage_gb)
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Move {account.name} to {target_tier} tier",
                description=(
                    f"{account.name} has seen no access for {inactive_days:.0f} days. Switching from "
                    f"{access_tier} to {target_tier} tier aligns costs to usage."
                ),
                impact_monthly=impact,
                confidence=0.5,
                details={
                    "resourceId": account.resource_id,
                    "subscriptionId": account.subscription_id,
                    "accessTier": access_tier,
                    "targetTier": target_tier,
                    "inactiveDays": inactive_days,
                    "totalStorageGb": total_storage_gb,
                    "action": "updateStorageTier",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.network.public-ip-unused",
    "Release unused public IP addresses",
    {"minImpact": PUBLIC_IP_MONTHLY_COST},
)
async def public_ip_unused(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    min_impact = thresholds["minImpact"]

    ip_map = await load_resource_map(ctx.db, ctx.org_id, PUBLIC_IP_TYPE)

    recommendations = []
    for address in await ctx.azure.list_public_ips():
        resource = ip_map.get(address.id.lower())
        if resource is None:
            continue

        # A dynamic IP only holds an address while something uses it
        if address.ip_address and (address.allocation_method or "").lower() == "dynamic":
            continue

        impact = resource.cost_monthly if resource.cost_monthly is not None else PUBLIC_IP_MONTHLY_COST
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Release public IP {resource.name}",
                description=(
                    f"{resource.name} is not associated with a resource. Releasing it avoids monthly "
                    "static IP charges."
                ),
                impact_monthly=impact,
                confidence=0.65,
                details={
                    "resourceId": resource.resource_id,
                    "subscriptionId": resource.subscription_id,
                    "ipAddress": address.ip_address,
                    "action": "releasePublicIp",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.network.load-balancer-idle",
    "Remove idle load balancers",
    {"minImpact": 15},
)
async def load_balancer_idle(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    min_impact = thresholds["minImpact"]

    balancer_map = await load_resource_map(ctx.db, ctx.org_id, LOAD_BALANCER_TYPE)

    recommendations = []
    for balancer in await ctx.azure.list_load_balancers():
        resource = balancer_map.get(balancer.id.lower())
        if resource is None:
            continue

        has_frontend = any(
            frontend.public_ip_address_id or frontend.private_ip_address
            for frontend in balancer.frontend_ip_configurations
        )
        if has_frontend:
            continue

        impact = resource.cost_monthly if resource.cost_monthly is not None else LOAD_BALANCER_MONTHLY_COST
        if impact < min_impact:
            continue

        recommendations.append(
            RecommendationPayload(
                title=f"Remove idle load balancer {resource.name}",
                description=(
                    f"{resource.name} has no active front-end configuration. Removing it avoids "
                    "unnecessary network charges."
                ),
                impact_monthly=impact,
                confidence=0.6,
                details={
                    "resourceId": resource.resource_id,
                    "subscriptionId": resource.subscription_id,
                    "action": "deleteLoadBalancer",
                },
            )
        )
    return recommendations


@define_rule(
    "azure.subscription.high-cost",
    "Investigate high monthly subscription cost",
    {"maxMonthlyCost": 5000},
)
async def subscription_high_cost(ctx: RuleContext, thresholds: dict[str, float]) -> list[RecommendationPayload]:
    limit = thresholds["maxMonthlyCost"]

    cost = await ctx.azure.get_subscription_monthly_cost()
    if cost < limit:
        return []

    subscription = await cloud_subscription_crud.get_first_subscription(ctx.db, ctx.org_id)
    subscription_id = subscription.subscription_id if subscription else ""
    resource_id = f"/subscriptions/{subscription_id}" if subscription_id else "azure-subscription"

    return [
        RecommendationPayload(
            title=f"Subscription cost exceeds {format_currency(limit)}",
            description=(
                f"Month-to-date cost for the subscription is {format_currency(cost)}, above the "
                f"configured threshold of {format_currency(limit)}. Review budgets, reserved instances, "
                "or savings plans to reduce spend."
            ),
            impact_monthly=cost * SUBSCRIPTION_SAVINGS_RATE,
            confidence=0.4,
            details={
                "resourceId": resource_id,
                "subscriptionId": subscription_id or resource_id,
                "monthlyCost": cost,
                "threshold": limit,
                "action": "reviewSubscriptionSpend",
            },
        )
    ]


AZURE_RULE_DEFINITIONS = [
    vm_rightsize,
    vm_idle,
    disk_unattached,
    disk_premium_downgrade,
    sql_rightsize,
    app_service_rightsize,
    storage_cool_tier,
    public_ip_unused,
    load_balancer_idle,
    subscription_high_cost,
]
