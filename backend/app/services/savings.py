"""Savings estimator: representative Azure prices and one-step-down tier targets."""

import math
from typing import NamedTuple


class PricingDimension(NamedTuple):
    """Prices and downgrade targets for one optimizable dimension."""

    name: str
    prices: dict[str, float]  # tier -> USD/month (or USD/unit/month when per_unit)
    downgrades: dict[str, str]  # tier -> next cheaper tier
    per_unit: bool = False  # prices scale with capacity (GB)


VM_PRICING = PricingDimension(
    name="vm",
    prices={
        "Standard_B2s": 35,
        "Standard_B4ms": 70,
        "Standard_D2s_v3": 120,
        "Standard_D4s_v3": 240,
        "Standard_D8s_v3": 480,
        "Standard_E2s_v3": 160,
        "Standard_E4s_v3": 320,
    },
    downgrades={
        "Standard_D8s_v3": "Standard_D4s_v3",
        "Standard_D4s_v3": "Standard_D2s_v3",
        "Standard_D2s_v3": "Standard_B4ms",
        "Standard_B4ms": "Standard_B2s",
        "Standard_E4s_v3": "Standard_E2s_v3",
    },
)

DISK_PRICING = PricingDimension(
    name="disk",
    prices={
        "Premium_LRS": 0.12,
        "Premium_ZRS": 0.14,
        "StandardSSD_LRS": 0.08,
        "StandardSSD_ZRS": 0.09,
        "Standard_LRS": 0.06,
        "Standard_ZRS": 0.065,
    },
    downgrades={
        "Premium_LRS": "StandardSSD_LRS",
        "Premium_ZRS": "StandardSSD_ZRS",
        "StandardSSD_LRS": "Standard_LRS",
        "StandardSSD_ZRS": "Standard_ZRS",
    },
    per_unit=True,
)

STORAGE_PRICING = PricingDimension(
    name="storage",
    prices={
        "Hot": 0.02,
        "Cool": 0.015,
        "Archive": 0.002,
    },
    downgrades={
        "Hot": "Cool",
        "Cool": "Archive",
    },
    per_unit=True,
)

SQL_PRICING = PricingDimension(
    name="sql",
    prices={
        "GP_Gen5_8": 600,
        "GP_Gen5_4": 330,
        "GP_Gen5_2": 180,
        "GP_Gen5_1": 95,
        "HS_Gen5_8": 680,
    },
    downgrades={
        "GP_Gen5_8": "GP_Gen5_4",
        "GP_Gen5_4": "GP_Gen5_2",
        "GP_Gen5_2": "GP_Gen5_1",
        "HS_Gen5_8": "GP_Gen5_4",
    },
)

APP_SERVICE_PRICING = PricingDimension(
    name="app_service",
    prices={
        "P3v3": 400,
        "P2v3": 250,
        "P1v3": 130,
        "S2": 90,
        "S1": 60,
        "B1": 30,
    },
    downgrades={
        "P3v3": "P2v3",
        "P2v3": "P1v3",
        "S2": "S1",
        "S1": "B1",
    },
)

PRICING_DIMENSIONS: dict[str, PricingDimension] = {
    dimension.name: dimension
    for dimension in (VM_PRICING, DISK_PRICING, STORAGE_PRICING, SQL_PRICING, APP_SERVICE_PRICING)
}

# Flat monthly prices for resources without tiers
PUBLIC_IP_MONTHLY_COST = 3.0
LOAD_BALANCER_MONTHLY_COST = 18.0


def _get_dimension(dimension: str | PricingDimension) -> PricingDimension:
    if isinstance(dimension, PricingDimension):
        return dimension
    try:
        return PRICING_DIMENSIONS[dimension]
    except KeyError:
        raise ValueError(f"Unknown pricing dimension: {dimension}") from None


def recommended_tier_for(dimension: str | PricingDimension, current_tier: str | None) -> str | None:
    """
    Next cheaper tier for current_tier.

    Returns:
        Target tier, or None when the tier is unknown or already the cheapest
    """
    if not current_tier:
        return None
    return _get_dimension(dimension).downgrades.get(current_tier)


def estimate_savings(
    dimension: str | PricingDimension,
    current_tier: str | None,
    target_tier: str | None,
    size: float | None = None,
) -> float:
    """
    Monthly savings of moving from current_tier to target_tier.

    Args:
        dimension: Pricing dimension name ('vm', 'disk', 'storage', 'sql', 'app_service')
        current_tier: Tier in use today
        target_tier: Proposed tier
        size: Capacity in GB (required for per-unit dimensions)

    Returns:
        max(0, price(current) - price(target)), scaled by size where prices are
        per unit; 0.0 when a tier is unknown or a required size is missing
    """
    pricing = _get_dimension(dimension)
    current_price = pricing.prices.get(current_tier or "")
    target_price = pricing.prices.get(target_tier or "")
    if current_price is None or target_price is None:
        return 0.0

    delta = current_price - target_price
    if pricing.per_unit:
        if size is None or not math.isfinite(size) or size <= 0:
            return 0.0
        delta *= size

    return max(0.0, float(delta))
