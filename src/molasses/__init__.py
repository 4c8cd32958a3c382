"""molasses feature flag SDK."""

from .analytics import EXPERIMENT_STARTED, EXPERIMENT_SUCCESS, AnalyticsEvent, EventUploader
from .cache import FeatureCache
from .client import FeatureClient
from .config import BackoffSection, MolassesConfig, load_config
from .evaluator import evaluate, in_percentage, in_segment, is_active
from .exceptions import MolassesError, MolassesErrorCodes
from .fetcher import FeatureFetcher
from .http_client import MolassesClient
from .logger import new_logger
from .memory import InMemoryMolassesClient
from .models import (
    Branch,
    ConstraintMode,
    EvaluationReason,
    EvaluationResult,
    Feature,
    FeaturesResponse,
    Operator,
    Segment,
    SegmentType,
    User,
    UserConstraint,
    UserParamType,
)
from .stream import FeatureStream

__all__ = [
    "EXPERIMENT_STARTED",
    "EXPERIMENT_SUCCESS",
    "AnalyticsEvent",
    "BackoffSection",
    "Branch",
    "ConstraintMode",
    "EvaluationReason",
    "EvaluationResult",
    "EventUploader",
    "Feature",
    "FeatureCache",
    "FeatureClient",
    "FeatureFetcher",
    "FeatureStream",
    "FeaturesResponse",
    "InMemoryMolassesClient",
    "MolassesClient",
    "MolassesConfig",
    "MolassesError",
    "MolassesErrorCodes",
    "Operator",
    "Segment",
    "SegmentType",
    "User",
    "UserConstraint",
    "UserParamType",
    "evaluate",
    "in_percentage",
    "in_segment",
    "is_active",
    "load_config",
    "new_logger",
]
