"""SQLAlchemy database models."""

from app.models.organization import Organization
from app.models.connection import Connection
from app.models.cloud_subscription import CloudSubscription
from app.models.cloud_resource import CloudResource
from app.models.recommendation import Recommendation
from app.models.rules_config import RulesConfig
from app.models.pull_request_event import PullRequestEvent

__all__ = [
    "Organization",
    "Connection",
    "CloudSubscription",
    "CloudResource",
    "Recommendation",
    "RulesConfig",
    "PullRequestEvent",
]
