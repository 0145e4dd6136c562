"""Train/validation splitting for rated examples."""

from aitelier.services.splitting.planner import ExampleRecord, SplitConfig, SplitPlan, SplitPlanner

__all__ = ["ExampleRecord", "SplitConfig", "SplitPlan", "SplitPlanner"]
