"""
Production pipeline: validates and applies one stage transition on one
track of one order.

Rule: a track may move forward by at most one stage, or back to any
already-completed stage. The mounting track's not-applicable stage is
reachable from anywhere, and any normal stage may be re-selected from it.

Pure functions only; persistence belongs to the coordinator.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

from fulfillment.engine.orders import Order
from fulfillment.engine.stages import (
    DELIVERED_STAGES,
    MountingStage,
    StageDefinition,
    StoneStage,
    Track,
    as_track,
    ordinal_of,
    parse_stage,
    stage_catalog,
    track_progress,
)
from fulfillment.errors import IllegalStageJump


def _is_reachable(track: Track, current_ordinal: int, target: StageDefinition) -> bool:
    if track is Track.MOUNTING and target.key == MountingStage.NOT_APPLICABLE.value:
        return True
    return target.ordinal <= current_ordinal + 1


def advance_stage(order: Order, track: Union[Track, str], target_key: object) -> Order:
    """
    Return a copy of order with the track's stage set to target_key.

    Raises InvalidStageKey for keys outside the track's catalog and
    IllegalStageJump when the target skips ahead by more than one stage.
    """
    t = as_track(track)
    target = parse_stage(t, target_key)
    current = order.stage_for(t)
    current_ordinal = ordinal_of(t, current)
    target_def = stage_catalog(t)[ordinal_of(t, target)]

    if not _is_reachable(t, current_ordinal, target_def):
        raise IllegalStageJump(
            t.value,
            current.value,
            target.value,
            target_def.ordinal - current_ordinal,
        )
    return order.with_stage(t, target)


def allowed_targets(order: Order, track: Union[Track, str]) -> list[StageDefinition]:
    """Stages a caller may select next on this track (the "clickable" set)."""
    t = as_track(track)
    current_ordinal = ordinal_of(t, order.stage_for(t))
    return [d for d in stage_catalog(t) if _is_reachable(t, current_ordinal, d)]


def is_production_complete(order: Order) -> bool:
    return (
        order.stone_stage is StoneStage.MOUNTED
        and order.mounting_stage in DELIVERED_STAGES
    )


@dataclass(frozen=True)
class ProductionSummary:
    in_progress: int
    completed: int
    waiting: int


def summarize_production(orders: Iterable[Order]) -> ProductionSummary:
    """Dashboard counts. An order still at either track's first stage counts as waiting."""
    in_progress = completed = waiting = 0
    for order in orders:
        if is_production_complete(order):
            completed += 1
        else:
            in_progress += 1
        if (
            order.stone_stage is StoneStage.SEARCHING
            or order.mounting_stage is MountingStage.AWAITING_START
        ):
            waiting += 1
    return ProductionSummary(in_progress=in_progress, completed=completed, waiting=waiting)


def production_snapshot(order: Order) -> dict:
    """Derived, never-stored view of an order's production state."""
    tracks = {}
    for t in Track:
        stage = order.stage_for(t)
        tracks[t.value] = {
            "stage": stage.value,
            "ordinal": ordinal_of(t, stage),
            "progress": round(track_progress(t, stage), 1),
            "allowed_targets": [d.key for d in allowed_targets(order, t)],
        }
    return {
        "order_id": order.id,
        "tracks": tracks,
        "production_complete": is_production_complete(order),
    }
