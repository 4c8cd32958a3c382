"""Feature evaluation engine.

Every function here is pure: it reads a Feature and a User and returns a
decision without I/O or shared state, so it is safe to call from any thread.
"""

from __future__ import annotations

import math
import zlib

from .constraints import meets
from .models import (
    ConstraintMode,
    EvaluationReason,
    EvaluationResult,
    Feature,
    Segment,
    SegmentType,
    User,
)

ID_PARAM = "id"


def in_percentage(user_id: str, percentage: int) -> bool:
    """Bucket a user id into [0, 100) with CRC-32 and compare to the rollout.

    A user's bucket never changes, so raising the percentage only adds users.
    """
    if percentage == 100:
        return True
    checksum = float(zlib.crc32(user_id.encode("utf-8")))
    bucket = abs(math.fmod(checksum, 100.0))
    return bucket < percentage


def in_segment(user: User, segment: Segment) -> bool:
    """Return whether the user satisfies enough of the segment's constraints."""
    required = len(segment.user_constraints)
    if segment.constraint_mode == ConstraintMode.ANY:
        required = 1

    params = user.params or {}
    met = 0
    for constraint in segment.user_constraints:
        if constraint.user_param == ID_PARAM:
            user_value, exists = user.id, True
        else:
            exists = constraint.user_param in params
            user_value = params.get(constraint.user_param)
        if meets(constraint, user_value, exists):
            met += 1
    return met >= required


def index_segments(feature: Feature) -> dict[SegmentType, Segment]:
    """Index segments by type. The last segment of a given type wins."""
    segments: dict[SegmentType, Segment] = {}
    for segment in feature.segments:
        if segment.segment_type != SegmentType.UNKNOWN:
            segments[segment.segment_type] = segment
    return segments


def evaluate(feature: Feature, user: User | None = None) -> EvaluationResult:
    """Decide whether a feature is active for a user.

    Checks run in priority order and stop at the first match: the master
    switch, anonymous callers, always-control, always-experiment, then the
    everyone-else percentage rollout.
    """

    def result(active: bool, reason: str) -> EvaluationResult:
        return EvaluationResult(
            feature_key=feature.key,
            active=active,
            feature_id=feature.id,
            reason=reason,
        )

    if not feature.active:
        return result(False, EvaluationReason.FEATURE_INACTIVE)
    if user is None:
        return result(True, EvaluationReason.ANONYMOUS_USER)

    segments = index_segments(feature)

    control = segments.get(SegmentType.ALWAYS_CONTROL)
    if control is not None and in_segment(user, control):
        return result(False, EvaluationReason.ALWAYS_CONTROL)

    experiment = segments.get(SegmentType.ALWAYS_EXPERIMENT)
    if experiment is not None and in_segment(user, experiment):
        return result(True, EvaluationReason.ALWAYS_EXPERIMENT)

    everyone_else = segments.get(
        SegmentType.EVERYONE_ELSE, Segment(segment_type=SegmentType.EVERYONE_ELSE)
    )
    return result(
        in_percentage(user.id or "", everyone_else.percentage),
        EvaluationReason.PERCENTAGE_ROLLOUT,
    )


def is_active(feature: Feature, user: User | None = None) -> bool:
    """Boolean shorthand for :func:`evaluate`."""
    return evaluate(feature, user).active
