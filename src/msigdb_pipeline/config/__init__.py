from .loader import load_config, load_config_with_overrides
from .schema import (
    EnsemblThresholds,
    MembershipThresholds,
    MsigdbSourceConfig,
    PipelineConfig,
    ReleaseThresholds,
    ValidationConfig,
)

__all__ = [
    "load_config",
    "load_config_with_overrides",
    "PipelineConfig",
    "MsigdbSourceConfig",
    "ValidationConfig",
    "EnsemblThresholds",
    "MembershipThresholds",
    "ReleaseThresholds",
]
