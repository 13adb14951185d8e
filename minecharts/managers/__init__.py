"""Manager layer - business logic."""

from minecharts.managers.lifecycle import LifecycleOrchestrator
from minecharts.managers.naming import ServerNames
from minecharts.managers.network import NetworkExposureManager

__all__ = ["LifecycleOrchestrator", "NetworkExposureManager", "ServerNames"]
