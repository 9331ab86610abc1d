"""Tests for the rule engine and the Azure rule catalog."""

from datetime import datetime, timedelta, timezone

import pytest

from app.crud import cloud_subscription as cloud_subscription_crud
from app.crud import recommendation as recommendation_crud
from app.crud import rules_config as rules_config_crud
from app.providers.azure import (
    AzureAPIError,
    AzureFrontendIpConfiguration,
    AzureLoadBalancer,
    AzurePublicIp,
    AzureUnattachedDisk,
)
from app.rules import engine
from app.rules.engine import run_rules_for_org
from app.services.connections import ConnectionNotConfiguredError

VM_TYPE = "Microsoft.Compute/virtualMachines"
DISK_TYPE = "Microsoft.Compute/disks"


def iso_days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


async def recommendations_for(db_session, organization_id):
    rows, _ = await recommendation_crud.list_recommendations(db_session, organization_id, limit=100)
    return [recommendation for recommendation, _ in rows]


class TestVirtualMachineRules:
    """Test right-sizing and idle detection for virtual machines."""

    @pytest.mark.asyncio
    async def test_underutilized_vm_is_rightsized(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        vm = await make_resource("vm-app-01", VM_TYPE, tags={"vmSize": "Standard_D8s_v3"})
        fake_azure.cpu[vm.resource_id] = 12.0

        summary = await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)
        recommendation = await recommendation_crud.find_recommendation(
            db_session, organization.id, "azure.vm.rightsize", vm.resource_id
        )

        assert summary.rules_failed == 0
        assert summary.recommendations_persisted == 1
        assert recommendation.status == "open"
        assert recommendation.impact_monthly == pytest.approx(240.0)
        assert recommendation.confidence == pytest.approx(0.6)
        assert recommendation.subscription_id == vm.subscription_id
        assert recommendation.details["currentSku"] == "Standard_D8s_v3"
        assert recommendation.details["targetSku"] == "Standard_D4s_v3"
        assert recommendation.details["action"] == "resizeVm"
        assert fake_azure.metric_calls[0] == (vm.resource_id, 30)

    @pytest.mark.asyncio
    async def test_busy_vm_is_left_alone(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        vm = await make_resource("vm-app-01", VM_TYPE, tags={"vmSize": "Standard_D8s_v3"})
        fake_azure.cpu[vm.resource_id] = 35.0

        summary = await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert summary.recommendations_persisted == 0
        assert await recommendations_for(db_session, organization.id) == []

    @pytest.mark.asyncio
    async def test_failed_metric_query_uses_cached_metric(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        vm = await make_resource(
            "vm-app-01", VM_TYPE, tags={"vmSize": "Standard_D8s_v3"}, metrics={"cpuAverage": 10}
        )
        fake_azure.cpu[vm.resource_id] = AzureAPIError("throttled", status_code=429)

        summary = await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)
        recommendation = await recommendation_crud.find_recommendation(
            db_session, organization.id, "azure.vm.rightsize", vm.resource_id
        )

        assert summary.rules_failed == 0
        assert recommendation.details["cpuAverage"] == 10

    @pytest.mark.asyncio
    async def test_vm_without_signal_is_skipped(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        vm = await make_resource("vm-app-01", VM_TYPE, tags={"vmSize": "Standard_D8s_v3"}, cost_monthly=300)
        fake_azure.cpu[vm.resource_id] = AzureAPIError("unavailable", status_code=503)

        summary = await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert summary.rules_failed == 0
        assert await recommendations_for(db_session, organization.id) == []

    @pytest.mark.asyncio
    async def test_idle_vm_is_deallocated(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        vm = await make_resource("vm-batch", VM_TYPE, cost_monthly=150.0)
        fake_azure.cpu[vm.resource_id] = 2.0

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)
        recommendation = await recommendation_crud.find_recommendation(
            db_session, organization.id, "azure.vm.idle", vm.resource_id
        )

        assert recommendation.impact_monthly == pytest.approx(150.0)
        assert recommendation.details["action"] == "deallocateVm"

    @pytest.mark.asyncio
    async def test_lowercase_resource_type_matches(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        vm = await make_resource(
            "vm-app-01",
            VM_TYPE.lower(),
            tags={"vmSize": "Standard_D8s_v3"},
            resource_id=f"/subscriptions/s/resourcegroups/rg/providers/{VM_TYPE.lower()}/vm-app-01",
        )
        fake_azure.cpu[vm.resource_id] = 12.0

        summary = await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert summary.recommendations_persisted == 1


class TestUnattachedDiskRule:
    """Test suppression and threshold overrides for unattached disks."""

    @pytest.fixture
    async def disk(self, fake_azure, make_resource):
        resource = await make_resource("data-disk-1", DISK_TYPE)
        fake_azure.unattached_disks = [
            AzureUnattachedDisk(
                id=resource.resource_id.upper(),
                name="data-disk-1",
                location="westeurope",
                disk_size_gb=100,
                sku="Premium_LRS",
                time_created=iso_days_ago(10),
            )
        ]
        return resource

    @pytest.mark.asyncio
    async def test_small_impact_is_suppressed(self, db_session, organization, azure_connection, fake_azure, disk):
        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert await recommendations_for(db_session, organization.id) == []

    @pytest.mark.asyncio
    async def test_lowered_min_impact(self, db_session, organization, azure_connection, fake_azure, disk):
        await rules_config_crud.set_rule_override(
            db_session, organization.id, "azure.disk.unattached", thresholds={"minImpact": 1}
        )

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)
        recommendation = await recommendation_crud.find_recommendation(
            db_session, organization.id, "azure.disk.unattached", disk.resource_id
        )

        assert recommendation.impact_monthly == pytest.approx(4.0)
        assert recommendation.details["targetSku"] == "StandardSSD_LRS"
        assert recommendation.details["sizeGb"] == 100

    @pytest.mark.asyncio
    async def test_recent_disk_is_skipped(self, db_session, organization, azure_connection, fake_azure, disk):
        fake_azure.unattached_disks[0].time_created = iso_days_ago(2)
        await rules_config_crud.set_rule_override(
            db_session, organization.id, "azure.disk.unattached", thresholds={"minImpact": 1}
        )

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert await recommendations_for(db_session, organization.id) == []

    @pytest.mark.asyncio
    async def test_disabled_rule_does_not_run(self, db_session, organization, azure_connection, fake_azure, disk):
        await rules_config_crud.set_rule_override(
            db_session, organization.id, "azure.disk.unattached", enabled=False, thresholds={"minImpact": 1}
        )

        summary = await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert summary.rules_executed == 9
        assert await recommendations_for(db_session, organization.id) == []


class TestPremiumDiskRule:
    @pytest.mark.asyncio
    async def test_low_iops_disk_is_downgraded(self, db_session, organization, azure_connection, fake_azure, make_resource):
        disk = await make_resource(
            "disk-data-01", DISK_TYPE, tags={"sku": "Premium_LRS"}, metrics={"avgConsumedIops": 50, "sizeGb": 1024}
        )

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)
        recommendation = await recommendation_crud.find_recommendation(
            db_session, organization.id, "azure.disk.premium-downgrade", disk.resource_id
        )

        assert recommendation.impact_monthly == pytest.approx(40.96)
        assert recommendation.details["targetSku"] == "StandardSSD_LRS"

    @pytest.mark.asyncio
    async def test_disk_without_iops_signal_is_skipped(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        await make_resource("disk-data-01", DISK_TYPE, tags={"sku": "Premium_LRS"}, metrics={"sizeGb": 1024})

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert await recommendations_for(db_session, organization.id) == []


class TestNetworkAndSubscriptionRules:
    @pytest.mark.asyncio
    async def test_unused_static_public_ip(self, db_session, organization, azure_connection, fake_azure, make_resource):
        resource = await make_resource("pip-old", "Microsoft.Network/publicIPAddresses")
        fake_azure.public_ips = [
            AzurePublicIp(id=resource.resource_id, name="pip-old", location=None, allocation_method="Static")
        ]

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)
        recommendation = await recommendation_crud.find_recommendation(
            db_session, organization.id, "azure.network.public-ip-unused", resource.resource_id
        )

        assert recommendation.impact_monthly == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_public_ip_of_unknown_cost_respects_min_impact(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        resource = await make_resource("pip-old", "Microsoft.Network/publicIPAddresses")
        fake_azure.public_ips = [
            AzurePublicIp(id=resource.resource_id, name="pip-old", location=None, allocation_method="Static")
        ]
        await rules_config_crud.set_rule_override(
            db_session, organization.id, "azure.network.public-ip-unused", thresholds={"minImpact": 10}
        )

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert await recommendations_for(db_session, organization.id) == []

    @pytest.mark.asyncio
    async def test_load_balancer_with_frontend_is_kept(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        busy = await make_resource("lb-busy", "Microsoft.Network/loadBalancers")
        idle = await make_resource("lb-idle", "Microsoft.Network/loadBalancers")
        fake_azure.load_balancers = [
            AzureLoadBalancer(
                id=busy.resource_id,
                name="lb-busy",
                location=None,
                frontend_ip_configurations=[AzureFrontendIpConfiguration(public_ip_address_id="pip-1")],
            ),
            AzureLoadBalancer(id=idle.resource_id, name="lb-idle", location=None),
        ]

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert [r.resource_id for r in await recommendations_for(db_session, organization.id)] == [idle.resource_id]

    @pytest.mark.asyncio
    async def test_high_subscription_cost(self, db_session, organization, azure_connection, fake_azure):
        await cloud_subscription_crud.upsert_subscription(db_session, organization.id, "sub-prod", "Production")
        fake_azure.subscription_cost = 6000.0

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)
        recommendation = await recommendation_crud.find_recommendation(
            db_session, organization.id, "azure.subscription.high-cost", "/subscriptions/sub-prod"
        )

        assert recommendation.impact_monthly == pytest.approx(720.0)
        assert recommendation.subscription_id == "sub-prod"


class TestEngine:
    """Test isolation and idempotence of a run."""

    @pytest.mark.asyncio
    async def test_failing_rule_does_not_stop_others(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        org_id = organization.id
        vm = await make_resource("vm-app-01", VM_TYPE, tags={"vmSize": "Standard_D8s_v3"})
        fake_azure.cpu[vm.resource_id] = 12.0
        fake_azure.errors["list_public_ips"] = AzureAPIError("forbidden", status_code=403)

        summary = await run_rules_for_org(db_session, org_id, fake_azure.client_factory)

        assert summary.rules_failed == 1
        assert summary.rules_executed == 9
        assert summary.recommendations_persisted == 1

    @pytest.mark.asyncio
    async def test_failed_upsert_does_not_stop_other_payloads(
        self, db_session, organization, azure_connection, fake_azure, make_resource, monkeypatch
    ):
        org_id = organization.id
        broken = await make_resource("vm-app-01", VM_TYPE, tags={"vmSize": "Standard_D8s_v3"})
        healthy = await make_resource("vm-app-02", VM_TYPE, tags={"vmSize": "Standard_D8s_v3"})
        address = await make_resource("pip-old", "Microsoft.Network/publicIPAddresses")
        broken_id, healthy_id, address_id = broken.resource_id, healthy.resource_id, address.resource_id
        fake_azure.cpu[broken_id] = 12.0
        fake_azure.cpu[healthy_id] = 12.0
        fake_azure.public_ips = [AzurePublicIp(id=address_id, name="pip-old", location=None, allocation_method="Static")]

        upsert = engine.upsert_recommendation

        async def failing_upsert(ctx, rule_id, payload):
            if payload.details.get("resourceId") == broken_id:
                raise RuntimeError("database unavailable")
            return await upsert(ctx, rule_id, payload)

        monkeypatch.setattr(engine, "upsert_recommendation", failing_upsert)

        summary = await run_rules_for_org(db_session, org_id, fake_azure.client_factory)

        assert summary.persistence_failures == 1
        assert summary.rules_failed == 0
        assert summary.rules_executed == 10
        assert summary.recommendations_persisted == 2
        assert await recommendation_crud.find_recommendation(db_session, org_id, "azure.vm.rightsize", healthy_id)
        assert await recommendation_crud.find_recommendation(db_session, org_id, "azure.vm.rightsize", broken_id) is None
        assert await recommendation_crud.find_recommendation(
            db_session, org_id, "azure.network.public-ip-unused", address_id
        )

    @pytest.mark.asyncio
    async def test_rerun_keeps_one_recommendation(
        self, db_session, organization, azure_connection, fake_azure, make_resource
    ):
        vm = await make_resource("vm-app-01", VM_TYPE, tags={"vmSize": "Standard_D8s_v3"})
        fake_azure.cpu[vm.resource_id] = 12.0

        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)
        fake_azure.cpu[vm.resource_id] = 8.0
        await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        recommendations = await recommendations_for(db_session, organization.id)
        assert len(recommendations) == 1
        assert recommendations[0].details["cpuAverage"] == 8.0

    @pytest.mark.asyncio
    async def test_missing_connection(self, db_session, organization, fake_azure):
        with pytest.raises(ConnectionNotConfiguredError):
            await run_rules_for_org(db_session, organization.id, fake_azure.client_factory)

        assert fake_azure.clients == []
