"""Signal schedule model and optimizer run configuration."""

from .optimizer_config import OptimizerConfig
from .signal_schedule import GreenLightPhase, SignalSchedule

__all__ = [
    "GreenLightPhase",
    "OptimizerConfig",
    "SignalSchedule",
]
