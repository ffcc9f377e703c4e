"""Service dependencies for the API routers.

Routers depend on these instead of importing singletons directly so tests
can swap them through `app.dependency_overrides`.
"""

from teamhub.payments.checkout import CheckoutInitiator, checkout_initiator
from teamhub.payments.webhooks import WebhookReconciler, webhook_reconciler
from teamhub.tasks.service import TaskService, task_service
from teamhub.teams.gateway import MembershipGateway, membership_gateway
from teamhub.teams.registry import TeamRegistry, team_registry


def get_registry() -> TeamRegistry:
    return team_registry


def get_gateway() -> MembershipGateway:
    return membership_gateway


def get_checkout() -> CheckoutInitiator:
    return checkout_initiator


def get_reconciler() -> WebhookReconciler:
    return webhook_reconciler


def get_task_service() -> TaskService:
    return task_service
