"""Commission plan registry."""

from ib_network.services.plans.plan_service import PlanService


__all__ = ["PlanService"]
