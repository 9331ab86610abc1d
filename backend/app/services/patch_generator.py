"""Annotates IaC files with a recommendation, without changing their behavior."""

import json
from typing import Any

from app.models.cloud_resource import CloudResource
from app.models.recommendation import Recommendation

MARKER_PREFIX = "costops recommendation"
ARM_METADATA_KEY = "costopsRecommendations"


def recommendation_marker(recommendation: Recommendation) -> str:
    return f"{MARKER_PREFIX} {recommendation.id}"


def _ensure_trailing_newline(value: str) -> str:
    return value if value.endswith("\n") else f"{value}\n"


def _format_impact(value: float) -> str:
    return f"{value:.2f}"


def format_comment_block(
    recommendation: Recommendation, resource: CloudResource, comment_prefix: str
) -> str:
    lines = [
        f"{comment_prefix} {recommendation_marker(recommendation)}",
        f"{comment_prefix} resource: {resource.name}",
        f"{comment_prefix} title: {recommendation.title}",
        f"{comment_prefix} impact (monthly): {_format_impact(recommendation.impact_monthly)}",
    ]
    return _ensure_trailing_newline("\n".join(lines))


def _append_comment_block(
    current: str, recommendation: Recommendation, resource: CloudResource, comment_prefix: str
) -> str:
    if recommendation_marker(recommendation) in current:
        return current
    block = format_comment_block(recommendation, resource, comment_prefix)
    if not current:
        return block
    return f"{_ensure_trailing_newline(current)}{block}"


def _apply_arm_metadata(current: str, recommendation: Recommendation, resource: CloudResource) -> str:
    try:
        document = json.loads(current)
    except json.JSONDecodeError:
        document = None
    if not isinstance(document, dict):
        # Not an ARM template we can edit; annotate the raw text instead
        return _append_comment_block(current, recommendation, resource, "//")

    metadata = document.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}

    existing = metadata.get(ARM_METADATA_KEY)
    entries: list[Any] = list(existing) if isinstance(existing, list) else []
    recommendation_id = str(recommendation.id)
    if not any(isinstance(entry, dict) and entry.get("id") == recommendation_id for entry in entries):
        entries.append(
            {
                "id": recommendation_id,
                "title": recommendation.title,
                "description": recommendation.description,
                "impactMonthly": recommendation.impact_monthly,
            }
        )

    metadata[ARM_METADATA_KEY] = entries
    document["metadata"] = metadata
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def generate_updated_content(
    file_format: str,
    current: str,
    recommendation: Recommendation,
    resource: CloudResource,
) -> str:
    """
    New content of an IaC file annotated with recommendation.

    Terraform and Bicep get a comment block carrying the recommendation marker;
    ARM templates get an entry in metadata.costopsRecommendations. Applying the
    same recommendation twice leaves the content unchanged.

    Args:
        file_format: 'terraform', 'bicep' or 'arm'
        current: Current file content
        recommendation: Recommendation to record
        resource: Resource the recommendation targets

    Returns:
        Updated content (identical to current when nothing needs to change)
    """
    if file_format == "terraform":
        return _append_comment_block(current, recommendation, resource, "#")
    if file_format == "bicep":
        return _append_comment_block(current, recommendation, resource, "//")
    if file_format == "arm":
        return _apply_arm_metadata(current, recommendation, resource)
    return current
