"""Dollar-cost-averaging plans: durable, idempotent daily purchases."""

from .scheduler import DcaRunResult, DcaScheduler, create_dca_plan, due_plans, is_market_open, run_due_plans

__all__ = ["DcaRunResult", "DcaScheduler", "create_dca_plan", "due_plans", "is_market_open", "run_due_plans"]
