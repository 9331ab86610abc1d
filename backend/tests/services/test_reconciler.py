"""Tests for merging rule output into stored recommendations."""

import pytest

from app.crud import recommendation as recommendation_crud
from app.models.recommendation import RecommendationStatus
from app.rules.types import RecommendationPayload, RuleContext
from app.services.reconciler import upsert_recommendation

RULE_ID = "azure.vm.rightsize"


def payload(resource_id: str | None, impact: float = 240.0, **details) -> RecommendationPayload:
    return RecommendationPayload(
        title="Right-size vm-app-01",
        description="Average CPU usage was 12.0%.",
        impact_monthly=impact,
        confidence=0.6,
        details={"resourceId": resource_id, **details} if resource_id else details,
    )


@pytest.fixture
def ctx(db_session, organization, fake_azure) -> RuleContext:
    return RuleContext(org_id=organization.id, db=db_session, azure=fake_azure.client_factory(None, "sub"))


class TestUpsertRecommendation:
    @pytest.mark.asyncio
    async def test_creates_open_recommendation(self, ctx, make_resource):
        vm = await make_resource("vm-app-01", "Microsoft.Compute/virtualMachines")

        recommendation = await upsert_recommendation(ctx, RULE_ID, payload(vm.resource_id))

        assert recommendation.status == RecommendationStatus.OPEN.value
        assert recommendation.rule_id == RULE_ID
        assert recommendation.resource_id == vm.resource_id
        assert recommendation.subscription_id == vm.subscription_id
        assert recommendation.details == {"resourceId": vm.resource_id}

    @pytest.mark.asyncio
    async def test_same_key_updates_in_place(self, ctx, db_session, organization, make_resource):
        vm = await make_resource("vm-app-01", "Microsoft.Compute/virtualMachines")

        first = await upsert_recommendation(ctx, RULE_ID, payload(vm.resource_id))
        second = await upsert_recommendation(ctx, RULE_ID, payload(vm.resource_id, impact=120.0, cpuAverage=8))
        rows, total = await recommendation_crud.list_recommendations(db_session, organization.id)

        assert second.id == first.id
        assert total == 1
        assert rows[0][0].impact_monthly == pytest.approx(120.0)
        assert rows[0][0].details["cpuAverage"] == 8

    @pytest.mark.asyncio
    async def test_update_keeps_status(self, ctx, make_resource, make_recommendation):
        vm = await make_resource("vm-app-01", "Microsoft.Compute/virtualMachines")
        existing = await make_recommendation(vm, rule_id=RULE_ID, status=RecommendationStatus.IN_PR)

        updated = await upsert_recommendation(ctx, RULE_ID, payload(vm.resource_id, impact=99.0))

        assert updated.id == existing.id
        assert updated.status == RecommendationStatus.IN_PR.value
        assert updated.impact_monthly == pytest.approx(99.0)

    @pytest.mark.asyncio
    async def test_different_rules_do_not_collide(self, ctx, make_resource):
        vm = await make_resource("vm-app-01", "Microsoft.Compute/virtualMachines")

        rightsize = await upsert_recommendation(ctx, RULE_ID, payload(vm.resource_id))
        idle = await upsert_recommendation(ctx, "azure.vm.idle", payload(vm.resource_id))

        assert rightsize.id != idle.id

    @pytest.mark.asyncio
    async def test_payload_without_resource_id_is_dropped(self, ctx, db_session, organization):
        assert await upsert_recommendation(ctx, RULE_ID, payload(None)) is None
        assert await upsert_recommendation(ctx, RULE_ID, payload("   ")) is None

        _, total = await recommendation_crud.list_recommendations(db_session, organization.id)
        assert total == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("impact", [-1.0, float("nan"), float("inf")])
    async def test_invalid_impact_is_dropped(self, ctx, impact):
        assert await upsert_recommendation(ctx, RULE_ID, payload("/subscriptions/s/x", impact=impact)) is None

    @pytest.mark.asyncio
    async def test_explicit_subscription_wins(self, ctx, make_resource):
        vm = await make_resource("vm-app-01", "Microsoft.Compute/virtualMachines")

        recommendation = await upsert_recommendation(
            ctx, RULE_ID, payload(vm.resource_id, subscriptionId="other-sub")
        )

        assert recommendation.subscription_id == "other-sub"

    @pytest.mark.asyncio
    async def test_unknown_resource_has_no_subscription(self, ctx):
        recommendation = await upsert_recommendation(ctx, RULE_ID, payload("/subscriptions/s/unknown"))

        assert recommendation.subscription_id is None
