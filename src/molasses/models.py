"""Feature definition data models and wire parsing."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

from .exceptions import MolassesError, MolassesErrorCodes

logger = structlog.get_logger(__name__)


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


class SegmentType(StrEnum):
    """Behavioural bucket a segment places users into."""

    ALWAYS_CONTROL = "alwaysControl"
    ALWAYS_EXPERIMENT = "alwaysExperiment"
    EVERYONE_ELSE = "everyoneElse"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> SegmentType:
        return cls.UNKNOWN


class Operator(StrEnum):
    """Comparison operator of a user constraint."""

    IN = "in"
    NOT_IN = "nin"
    EQUALS = "equals"
    NOT_EQUALS = "doesNotEqual"
    CONTAINS = "contains"
    NOT_CONTAINS = "doesNotContain"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "lte"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> Operator:
        return cls.UNKNOWN


class ConstraintMode(StrEnum):
    """How many constraints of a segment must be met."""

    ALL = "all"
    ANY = "any"

    @classmethod
    def _missing_(cls, value: object) -> ConstraintMode:
        return cls.ALL


class UserParamType(StrEnum):
    """Declared type of the user attribute a constraint reads."""

    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"

    @classmethod
    def _missing_(cls, value: object) -> UserParamType:
        return cls.STRING


class Branch(StrEnum):
    """Outcome branch reported to analytics."""

    CONTROL = "control"
    EXPERIMENT = "experiment"


@dataclass(frozen=True)
class UserConstraint:
    """One comparison rule against a user attribute."""

    operator: Operator
    values: str = ""
    user_param: str = ""
    user_param_type: UserParamType = UserParamType.STRING

    @classmethod
    def from_dict(cls, data: Any) -> UserConstraint:
        """Parse one constraint; anything that is not an object is never met."""
        if not isinstance(data, dict):
            return cls(operator=Operator.UNKNOWN)
        return cls(
            operator=Operator(data.get("operator") or "unknown"),
            values=_as_text(data.get("values")),
            user_param=_as_text(data.get("userParam")),
            user_param_type=UserParamType(data.get("userParamType") or "string"),
        )


@dataclass(frozen=True)
class Segment:
    """A rule group within a feature."""

    segment_type: SegmentType
    user_constraints: tuple[UserConstraint, ...] = ()
    percentage: int = 0
    constraint_mode: ConstraintMode = ConstraintMode.ALL

    @classmethod
    def from_dict(cls, data: Any) -> Segment:
        if not isinstance(data, dict):
            return cls(segment_type=SegmentType.UNKNOWN)
        return cls(
            segment_type=SegmentType(data.get("segmentType") or "unknown"),
            user_constraints=tuple(
                UserConstraint.from_dict(c) for c in _as_list(data.get("userConstraints"))
            ),
            percentage=_as_int(data.get("percentage")),
            constraint_mode=ConstraintMode(data.get("constraint") or "all"),
        )


@dataclass(frozen=True)
class Feature:
    """A feature flag with its master switch and segments."""

    id: str
    key: str
    description: str = ""
    version: str = ""
    active: bool = False
    segments: tuple[Segment, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Feature:
        """Build a Feature from one entry of the ``features`` payload.

        Raises:
            KeyError: when the entry has no ``key``
        """
        key = data.get("key")
        if not key:
            raise KeyError("key")
        return cls(
            id=_as_text(data.get("id")),
            key=str(key),
            description=_as_text(data.get("description")),
            version=_as_text(data.get("version")),
            active=data.get("active") is True,
            segments=tuple(Segment.from_dict(s) for s in _as_list(data.get("segments"))),
        )


@dataclass
class User:
    """The subject of an evaluation.

    ``params`` may hold strings, numbers or booleans.
    """

    id: str = ""
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class FeaturesResponse:
    """Body of ``GET /features`` and of each stream event."""

    features: list[Feature]
    name: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeaturesResponse:
        """Parse the ``{"data": {"features": [...]}}`` envelope.

        A feature entry without a key is skipped with a warning; the rest of
        the batch is kept.

        Raises:
            MolassesError: PARSE_ERROR when the envelope does not have the expected shape
        """
        body = (data.get("data") or {}) if isinstance(data, dict) else None
        if not isinstance(body, dict):
            raise MolassesError(
                code=MolassesErrorCodes.PARSE_ERROR,
                message="Invalid features payload: expected an object under data",
            )
        entries = body.get("features") or []
        if not isinstance(entries, list):
            raise MolassesError(
                code=MolassesErrorCodes.PARSE_ERROR,
                message="Invalid features payload: expected data.features to be a list",
            )

        features: list[Feature] = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict) or not entry.get("key"):
                logger.warning("skipping feature without a key", index=index)
                continue
            features.append(Feature.from_dict(entry))
        return cls(
            features=features,
            name=_as_text(body.get("name")),
            updated_at=_as_text(body.get("updatedAt")),
        )


class EvaluationReason:
    """Reason constants attached to an EvaluationResult."""

    FEATURE_INACTIVE: str = "FEATURE_INACTIVE"
    ANONYMOUS_USER: str = "ANONYMOUS_USER"
    ALWAYS_CONTROL: str = "ALWAYS_CONTROL"
    ALWAYS_EXPERIMENT: str = "ALWAYS_EXPERIMENT"
    PERCENTAGE_ROLLOUT: str = "PERCENTAGE_ROLLOUT"
    FEATURE_NOT_FOUND: str = "FEATURE_NOT_FOUND"


@dataclass
class EvaluationResult:
    """Activation decision plus the metadata analytics needs."""

    feature_key: str
    active: bool
    feature_id: str = ""
    reason: str = ""

    @property
    def branch(self) -> Branch:
        return Branch.EXPERIMENT if self.active else Branch.CONTROL
