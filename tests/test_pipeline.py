import pytest

from fulfillment.engine.orders import Order, SignatureStatus
from fulfillment.engine.pipeline import (
    advance_stage,
    allowed_targets,
    is_production_complete,
    production_snapshot,
    summarize_production,
)
from fulfillment.engine.stages import (
    MOUNTING_STAGES,
    STONE_STAGES,
    MountingStage,
    StoneStage,
    Track,
)
from fulfillment.errors import IllegalStageJump, InvalidStageKey


def _order_at(track, stage):
    return Order(id="o").with_stage(track, stage)


@pytest.mark.parametrize("current", STONE_STAGES, ids=lambda d: d.key)
def test_stone_advance_at_most_one_forward(current):
    order = _order_at(Track.STONE, StoneStage(current.key))
    for target in STONE_STAGES:
        if target.ordinal <= current.ordinal + 1:
            updated = advance_stage(order, Track.STONE, target.key)
            assert updated.stone_stage.value == target.key
        else:
            with pytest.raises(IllegalStageJump):
                advance_stage(order, Track.STONE, target.key)


@pytest.mark.parametrize("current", MOUNTING_STAGES, ids=lambda d: d.key)
def test_mounting_advance_with_not_applicable_exemption(current):
    order = _order_at(Track.MOUNTING, MountingStage(current.key))
    for target in MOUNTING_STAGES:
        allowed = (
            target.ordinal <= current.ordinal + 1
            or target.key == MountingStage.NOT_APPLICABLE.value
        )
        if allowed:
            assert advance_stage(order, "mounting", target.key).mounting_stage.value == target.key
        else:
            with pytest.raises(IllegalStageJump):
                advance_stage(order, "mounting", target.key)


def test_not_applicable_then_reselect_resets_progression():
    order = Order(id="o")
    order = advance_stage(order, Track.MOUNTING, "not-applicable")
    assert order.mounting_stage is MountingStage.NOT_APPLICABLE
    order = advance_stage(order, Track.MOUNTING, "designing")
    assert order.mounting_stage is MountingStage.DESIGNING
    with pytest.raises(IllegalStageJump):
        advance_stage(order, Track.MOUNTING, "casting")


def test_advance_changes_only_the_track_field():
    order = Order(
        id="o",
        signature_status=SignatureStatus.PENDING,
        signature_request_id="req-1",
    )
    updated = advance_stage(order, Track.STONE, "purchased")
    assert updated.stone_stage is StoneStage.PURCHASED
    assert updated.mounting_stage is order.mounting_stage
    assert updated.signature_status is SignatureStatus.PENDING
    assert updated.signature_request_id == "req-1"
    # input order is untouched
    assert order.stone_stage is StoneStage.SEARCHING


def test_illegal_jump_reports_distance():
    with pytest.raises(IllegalStageJump) as exc:
        advance_stage(Order(id="o"), Track.STONE, "mounted")
    assert exc.value.distance == 7
    assert exc.value.current == "searching"
    assert exc.value.target == "mounted"


def test_invalid_key_per_track():
    with pytest.raises(InvalidStageKey):
        advance_stage(Order(id="o"), Track.STONE, "not-applicable")
    with pytest.raises(InvalidStageKey):
        advance_stage(Order(id="o"), Track.MOUNTING, "bogus")


def test_completion_predicate_over_all_combinations():
    for stone in StoneStage:
        for mounting in MountingStage:
            order = Order(id="o", stone_stage=stone, mounting_stage=mounting)
            expected = stone is StoneStage.MOUNTED and mounting in (
                MountingStage.DELIVERED_HUB_A,
                MountingStage.DELIVERED_HUB_B,
            )
            assert is_production_complete(order) is expected


def test_allowed_targets():
    order = Order(id="o", mounting_stage=MountingStage.DESIGNING)
    keys = [d.key for d in allowed_targets(order, Track.MOUNTING)]
    assert keys == ["awaiting-start", "designing", "model-printing", "not-applicable"]
    assert [d.key for d in allowed_targets(order, Track.STONE)] == ["searching", "purchased"]


def test_summarize_production():
    orders = [
        Order(id="a"),
        Order(id="b", stone_stage=StoneStage.MOUNTED, mounting_stage=MountingStage.DELIVERED_HUB_A),
        Order(id="c", stone_stage=StoneStage.MOUNTED, mounting_stage=MountingStage.DELIVERED_HUB_B),
        Order(id="d", stone_stage=StoneStage.AT_WORKSHOP, mounting_stage=MountingStage.CASTING),
    ]
    summary = summarize_production(orders)
    assert summary.completed == 2
    assert summary.in_progress == 2
    assert summary.waiting == 1


def test_production_snapshot():
    order = Order(id="o", stone_stage=StoneStage.MOUNTED, mounting_stage=MountingStage.DELIVERED_HUB_A)
    snap = production_snapshot(order)
    assert snap["production_complete"] is True
    assert snap["tracks"]["stone"]["stage"] == "mounted"
    assert snap["tracks"]["stone"]["progress"] == 100.0
    assert snap["tracks"]["mounting"]["ordinal"] == 10
    assert "delivered-hub-b" in snap["tracks"]["mounting"]["allowed_targets"]
