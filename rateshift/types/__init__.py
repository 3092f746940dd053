# Re-export enums and configuration objects for easy import
from .enums import (
    AnalysisType,
    NodeMode,
    ReturnType,
    RateType,
    EventMatchPolicy,
    coerce_enum,
)
from .configs import (
    RateThroughTimeConfig,
    CredibleSetConfig,
    TimeVariationConfig,
    RateCurveConfig,
    EventDataConfig,
)

__all__ = [
    "AnalysisType",
    "NodeMode",
    "ReturnType",
    "RateType",
    "EventMatchPolicy",
    "coerce_enum",
    "RateThroughTimeConfig",
    "CredibleSetConfig",
    "TimeVariationConfig",
    "RateCurveConfig",
    "EventDataConfig",
]
