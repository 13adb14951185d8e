"""Server lifecycle orchestration."""

from minecharts.managers.lifecycle.lifecycle import (
    CreateResult,
    DeleteResult,
    LifecycleOrchestrator,
    LifecycleResult,
)

__all__ = ["CreateResult", "DeleteResult", "LifecycleOrchestrator", "LifecycleResult"]
