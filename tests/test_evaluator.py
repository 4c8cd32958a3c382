"""Feature evaluation unit tests."""

import zlib

from molasses import (
    ConstraintMode,
    EvaluationReason,
    Feature,
    Operator,
    Segment,
    SegmentType,
    User,
    UserConstraint,
    UserParamType,
    evaluate,
    in_percentage,
    in_segment,
    is_active,
)

USER_IDS = [str(i) for i in range(200)] + ["baz", "USERID1", "f603f621", "ユーザー"]


def make_feature(*segments: Segment, active: bool = True) -> Feature:
    return Feature(id="feature-id", key="FEATURE", active=active, segments=segments)


def everyone_else(percentage: int) -> Segment:
    return Segment(segment_type=SegmentType.EVERYONE_ELSE, percentage=percentage)


def constraint(
    operator: Operator,
    values: str,
    param: str,
    param_type: UserParamType = UserParamType.STRING,
) -> UserConstraint:
    return UserConstraint(
        operator=operator, values=values, user_param=param, user_param_type=param_type
    )


def control_user_segment() -> Segment:
    return Segment(
        segment_type=SegmentType.ALWAYS_CONTROL,
        user_constraints=(
            constraint(Operator.EQUALS, "true", "controlUser", UserParamType.BOOL),
        ),
    )


def test_inactive_feature_is_never_active() -> None:
    """active=false wins over every segment."""
    feature = make_feature(everyone_else(100), active=False)
    assert is_active(feature) is False
    for user_id in USER_IDS:
        assert is_active(feature, User(id=user_id)) is False
    assert evaluate(feature).reason == EvaluationReason.FEATURE_INACTIVE


def test_anonymous_user_sees_active_feature() -> None:
    feature = make_feature(control_user_segment(), everyone_else(0))
    result = evaluate(feature, None)
    assert result.active is True
    assert result.reason == EvaluationReason.ANONYMOUS_USER


def test_everyone_else_100_percent() -> None:
    assert is_active(make_feature(everyone_else(100)), User(id="baz")) is True


def test_everyone_else_0_percent() -> None:
    feature = make_feature(everyone_else(0))
    assert not any(is_active(feature, User(id=u)) for u in USER_IDS)


def test_missing_everyone_else_segment_means_nobody() -> None:
    feature = make_feature()
    assert not any(is_active(feature, User(id=u)) for u in USER_IDS)


def test_always_control_wins() -> None:
    """A user in always-control is inactive even with experiment and 100% rollout."""
    experiment = Segment(segment_type=SegmentType.ALWAYS_EXPERIMENT)
    feature = make_feature(control_user_segment(), experiment, everyone_else(100))
    result = evaluate(feature, User(id="u1", params={"controlUser": True}))
    assert result.active is False
    assert result.reason == EvaluationReason.ALWAYS_CONTROL
    assert result.branch == "control"


def test_always_experiment() -> None:
    experiment = Segment(
        segment_type=SegmentType.ALWAYS_EXPERIMENT,
        user_constraints=(constraint(Operator.IN, "yes,maybe,definitely", "experimentUser"),),
    )
    feature = make_feature(control_user_segment(), experiment, everyone_else(0))
    result = evaluate(feature, User(id="u1", params={"experimentUser": "maybe"}))
    assert result.active is True
    assert result.reason == EvaluationReason.ALWAYS_EXPERIMENT
    assert result.branch == "experiment"
    assert result.feature_id == "feature-id"


def test_falls_through_to_percentage() -> None:
    feature = make_feature(control_user_segment(), everyone_else(100))
    result = evaluate(feature, User(id="u1", params={"controlUser": False}))
    assert result.active is True
    assert result.reason == EvaluationReason.PERCENTAGE_ROLLOUT


def test_last_segment_of_a_type_wins() -> None:
    feature = make_feature(everyone_else(100), everyone_else(0))
    assert is_active(feature, User(id="baz")) is False
    feature = make_feature(everyone_else(0), everyone_else(100))
    assert is_active(feature, User(id="baz")) is True


def test_unknown_segment_type_is_ignored() -> None:
    feature = make_feature(Segment(segment_type=SegmentType.UNKNOWN), everyone_else(100))
    assert is_active(feature, User(id="baz")) is True


def test_half_rollout_known_buckets() -> None:
    """CRC-32 buckets: "1" lands at 83, "2" at 37."""
    feature = make_feature(everyone_else(50))
    assert is_active(feature, User(id="1")) is False
    assert is_active(feature, User(id="2")) is True


def test_in_percentage_matches_crc32_bucket() -> None:
    for user_id in USER_IDS:
        bucket = zlib.crc32(user_id.encode("utf-8")) % 100
        assert in_percentage(user_id, bucket + 1) is True
        assert in_percentage(user_id, bucket) is False


def test_in_percentage_is_monotonic() -> None:
    for user_id in USER_IDS:
        results = [in_percentage(user_id, p) for p in range(101)]
        first = results.index(True)
        assert all(results[first:])
        assert not any(results[:first])


def test_evaluation_is_deterministic() -> None:
    feature = make_feature(control_user_segment(), everyone_else(50))
    for user_id in USER_IDS:
        user = User(id=user_id, params={"controlUser": "false"})
        assert is_active(feature, user) == is_active(feature, user)


def test_segment_all_mode_requires_every_constraint() -> None:
    segment = Segment(
        segment_type=SegmentType.ALWAYS_CONTROL,
        user_constraints=(
            constraint(Operator.EQUALS, "true", "controlUser"),
            constraint(Operator.NOT_IN, "yes,maybe,definitely", "experimentUser"),
        ),
    )
    assert in_segment(User(params={"controlUser": "true", "experimentUser": "nope"}), segment)
    assert not in_segment(User(params={"controlUser": "true", "experimentUser": "yes"}), segment)
    assert not in_segment(User(params={"controlUser": "true"}), segment)


def test_segment_any_mode_requires_one_constraint() -> None:
    segment = Segment(
        segment_type=SegmentType.ALWAYS_EXPERIMENT,
        constraint_mode=ConstraintMode.ANY,
        user_constraints=(
            constraint(Operator.CONTAINS, "fals", "controlUser"),
            constraint(Operator.IN, "1235,123,1", "id"),
        ),
    )
    assert in_segment(User(id="1235"), segment)
    assert in_segment(User(id="9", params={"controlUser": "false"}), segment)
    assert not in_segment(User(id="9", params={"controlUser": "bar"}), segment)


def test_empty_segments_by_mode() -> None:
    """No constraints: all-mode always matches, any-mode never does."""
    all_segment = Segment(segment_type=SegmentType.ALWAYS_CONTROL)
    any_segment = Segment(
        segment_type=SegmentType.ALWAYS_CONTROL, constraint_mode=ConstraintMode.ANY
    )
    assert in_segment(User(id="x"), all_segment) is True
    assert in_segment(User(id="x"), any_segment) is False


def test_id_param_reads_user_id() -> None:
    """userParam "id" uses User.id even when params has no such key."""
    segment = Segment(
        segment_type=SegmentType.ALWAYS_EXPERIMENT,
        user_constraints=(
            constraint(Operator.GREATER_THAN_OR_EQUAL, "14588.007", "id", UserParamType.NUMBER),
        ),
    )
    assert in_segment(User(id="500000"), segment) is True
    assert in_segment(User(id="2", params={"id": "999999"}), segment) is False


def test_bad_constraint_does_not_abort_segment() -> None:
    """An uncoercible value only fails its own constraint."""
    segment = Segment(
        segment_type=SegmentType.ALWAYS_EXPERIMENT,
        constraint_mode=ConstraintMode.ANY,
        user_constraints=(
            constraint(Operator.GREATER_THAN, "10", "age", UserParamType.NUMBER),
            constraint(Operator.EQUALS, "gold", "tier"),
        ),
    )
    assert in_segment(User(params={"age": "old", "tier": "gold"}), segment) is True


def test_numbers_feature() -> None:
    control = Segment(
        segment_type=SegmentType.ALWAYS_CONTROL,
        user_constraints=(
            constraint(Operator.EQUALS, "500", "controlUser", UserParamType.NUMBER),
            constraint(Operator.NOT_EQUALS, "42", "experimentUser", UserParamType.NUMBER),
            constraint(Operator.LESS_THAN, "14588.007", "lt", UserParamType.NUMBER),
            constraint(Operator.LESS_THAN_OR_EQUAL, "14588.007", "lte", UserParamType.NUMBER),
        ),
    )
    experiment = Segment(
        segment_type=SegmentType.ALWAYS_EXPERIMENT,
        constraint_mode=ConstraintMode.ANY,
        user_constraints=(
            constraint(Operator.GREATER_THAN, "1235", "userId", UserParamType.NUMBER),
        ),
    )
    feature = make_feature(control, experiment, everyone_else(0))
    control_user = User(
        id="2",
        params={"controlUser": 500, "experimentUser": 43, "lt": -14580, "lte": "14588.007"},
    )
    assert is_active(feature, control_user) is False
    assert is_active(feature, User(id="2", params={"userId": 5235})) is True
    assert is_active(feature, User(id="2", params={"userId": 1235})) is False


def test_none_params_and_id_do_not_raise() -> None:
    feature = make_feature(control_user_segment(), everyone_else(50))
    assert is_active(feature, User(id=None, params=None)) in (True, False)  # type: ignore[arg-type]
