"""Network exposure for game servers."""

from minecharts.managers.network.network import (
    ExposureMode,
    ExposureResult,
    NetworkExposureManager,
)

__all__ = ["ExposureMode", "ExposureResult", "NetworkExposureManager"]
