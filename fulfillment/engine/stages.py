"""
Canonical production stages and ordering.

Two independent tracks: stone sourcing and mounting/fabrication.
Each track is a fixed, ordered catalog; the first entry is the default
for a new order. Catalogs are process-wide constants, not per-order data.

Stages are stored as their string key. Adding a stage is a code change
plus a data migration (scripts/fulfillment_migrate_v1.py).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from fulfillment.errors import InvalidStageKey


class Track(str, Enum):
    STONE = "stone"
    MOUNTING = "mounting"


class StoneStage(str, Enum):
    SEARCHING = "searching"
    PURCHASED = "purchased"
    IN_TRANSIT_TO_POBOX = "in-transit-to-pobox"
    AT_POBOX = "at-pobox"
    AT_DESTINATION_HUB = "at-destination-hub"
    WITH_DESIGNER = "with-designer"
    AT_WORKSHOP = "at-workshop"
    MOUNTED = "mounted"


class MountingStage(str, Enum):
    AWAITING_START = "awaiting-start"
    DESIGNING = "designing"
    MODEL_PRINTING = "model-printing"
    MODEL_REPRINTING = "model-reprinting"
    MODEL_TRANSFER = "model-transfer"
    AWAITING_WORKSHOP = "awaiting-workshop"
    CASTING = "casting"
    WORKSHOP_FINISHED = "workshop-finished"
    COLLECTION_IN_PROGRESS = "collection-in-progress"
    COLLECTED = "collected"
    DELIVERED_HUB_A = "delivered-hub-a"
    DELIVERED_HUB_B = "delivered-hub-b"
    # Absorbing: reachable from any stage, excluded from progress
    NOT_APPLICABLE = "not-applicable"


Stage = Union[StoneStage, MountingStage]


@dataclass(frozen=True)
class StageDefinition:
    key: str
    ordinal: int
    label: str


_STONE_LABELS: dict[StoneStage, str] = {
    StoneStage.SEARCHING: "Searching for stone",
    StoneStage.PURCHASED: "Stone purchased",
    StoneStage.IN_TRANSIT_TO_POBOX: "Stone in transit to PO Box",
    StoneStage.AT_POBOX: "Stone at PO Box",
    StoneStage.AT_DESTINATION_HUB: "Stone at destination hub",
    StoneStage.WITH_DESIGNER: "Stone with designer",
    StoneStage.AT_WORKSHOP: "Stone at workshop",
    StoneStage.MOUNTED: "Stone mounted",
}

_MOUNTING_LABELS: dict[MountingStage, str] = {
    MountingStage.AWAITING_START: "Awaiting start of process",
    MountingStage.DESIGNING: "Design in progress",
    MountingStage.MODEL_PRINTING: "Model printing",
    MountingStage.MODEL_REPRINTING: "Model reprinting",
    MountingStage.MODEL_TRANSFER: "Model transfer",
    MountingStage.AWAITING_WORKSHOP: "Waiting at workshop",
    MountingStage.CASTING: "Casting in progress",
    MountingStage.WORKSHOP_FINISHED: "Piece finished at workshop",
    MountingStage.COLLECTION_IN_PROGRESS: "Collection in progress",
    MountingStage.COLLECTED: "Collected",
    MountingStage.DELIVERED_HUB_A: "Delivered at hub A",
    MountingStage.DELIVERED_HUB_B: "Delivered at hub B",
    MountingStage.NOT_APPLICABLE: "Not applicable",
}

# Ordered catalogs (enum declaration order is the pipeline order)
STONE_STAGES: tuple[StageDefinition, ...] = tuple(
    StageDefinition(key=s.value, ordinal=i, label=_STONE_LABELS[s])
    for i, s in enumerate(StoneStage)
)
MOUNTING_STAGES: tuple[StageDefinition, ...] = tuple(
    StageDefinition(key=s.value, ordinal=i, label=_MOUNTING_LABELS[s])
    for i, s in enumerate(MountingStage)
)

_CATALOGS: dict[Track, tuple[StageDefinition, ...]] = {
    Track.STONE: STONE_STAGES,
    Track.MOUNTING: MOUNTING_STAGES,
}
_ENUMS: dict[Track, type] = {
    Track.STONE: StoneStage,
    Track.MOUNTING: MountingStage,
}

DELIVERED_STAGES: frozenset[MountingStage] = frozenset(
    [MountingStage.DELIVERED_HUB_A, MountingStage.DELIVERED_HUB_B]
)

# Key spellings written by the legacy order screens. Two screens used
# different spellings for the same stage; both map to one canonical key.
LEGACY_STAGE_ALIASES: dict[Track, dict[str, str]] = {
    Track.STONE: {
        "en_busqueda": StoneStage.SEARCHING.value,
        "piedra_comprada": StoneStage.PURCHASED.value,
        "piedra_transito_pobox": StoneStage.IN_TRANSIT_TO_POBOX.value,
        "en_transito_po_box": StoneStage.IN_TRANSIT_TO_POBOX.value,
        "piedra_pobox": StoneStage.AT_POBOX.value,
        "en_po_box": StoneStage.AT_POBOX.value,
        "piedra_levant": StoneStage.AT_DESTINATION_HUB.value,
        "en_levant": StoneStage.AT_DESTINATION_HUB.value,
        "piedra_con_disenador": StoneStage.WITH_DESIGNER.value,
        "con_disenador": StoneStage.WITH_DESIGNER.value,
        "piedra_en_taller": StoneStage.AT_WORKSHOP.value,
        "en_taller": StoneStage.AT_WORKSHOP.value,
        "piedra_montada": StoneStage.MOUNTED.value,
    },
    Track.MOUNTING: {
        "en_espera": MountingStage.AWAITING_START.value,
        "proceso_diseno": MountingStage.DESIGNING.value,
        "en_diseno": MountingStage.DESIGNING.value,
        "impresion_modelo": MountingStage.MODEL_PRINTING.value,
        "reimpresion_modelo": MountingStage.MODEL_REPRINTING.value,
        "traslado_modelo": MountingStage.MODEL_TRANSFER.value,
        "espera_taller": MountingStage.AWAITING_WORKSHOP.value,
        "en_espera_taller": MountingStage.AWAITING_WORKSHOP.value,
        "proceso_vaciado": MountingStage.CASTING.value,
        "en_vaciado": MountingStage.CASTING.value,
        "pieza_terminada_taller": MountingStage.WORKSHOP_FINISHED.value,
        "proceso_recoleccion": MountingStage.COLLECTION_IN_PROGRESS.value,
        "en_recoleccion": MountingStage.COLLECTION_IN_PROGRESS.value,
        "recolectado": MountingStage.COLLECTED.value,
        "entregado_oyamel": MountingStage.DELIVERED_HUB_A.value,
        "entregado_levant": MountingStage.DELIVERED_HUB_B.value,
        "no_aplica": MountingStage.NOT_APPLICABLE.value,
    },
}


def as_track(track: Union[Track, str]) -> Track:
    try:
        return Track(track)
    except ValueError:
        raise ValueError(f"Unknown track: {track!r}") from None


def stage_catalog(track: Union[Track, str]) -> tuple[StageDefinition, ...]:
    return _CATALOGS[as_track(track)]


def default_stage(track: Union[Track, str]) -> Stage:
    return list(_ENUMS[as_track(track)])[0]


def parse_stage(track: Union[Track, str], key: object) -> Stage:
    """Strict lookup: canonical keys (or enum members of the track) only."""
    t = as_track(track)
    enum_cls = _ENUMS[t]
    if isinstance(key, enum_cls):
        return key
    if isinstance(key, str):
        try:
            return enum_cls(key)
        except ValueError:
            pass
    raise InvalidStageKey(t.value, key)


def normalize_stage_key(track: Union[Track, str], raw: object) -> Stage:
    """
    Lenient lookup for stored data: accepts canonical keys, legacy
    spellings, and surrounding whitespace. Raises InvalidStageKey otherwise.
    """
    t = as_track(track)
    if isinstance(raw, str):
        txt = raw.strip()
        txt = LEGACY_STAGE_ALIASES[t].get(txt, txt)
        return parse_stage(t, txt)
    return parse_stage(t, raw)


def definition(track: Union[Track, str], key: object) -> StageDefinition:
    stage = parse_stage(track, key)
    return next(d for d in stage_catalog(track) if d.key == stage.value)


def ordinal_of(track: Union[Track, str], key: object) -> int:
    return definition(track, key).ordinal


def label_of(track: Union[Track, str], key: object) -> str:
    return definition(track, key).label


def key_at(track: Union[Track, str], ordinal: int) -> str:
    catalog = stage_catalog(track)
    if isinstance(ordinal, bool) or not isinstance(ordinal, int) or not 0 <= ordinal < len(catalog):
        raise InvalidStageKey(as_track(track).value, ordinal)
    return catalog[ordinal].key


def track_progress(track: Union[Track, str], key: object) -> float:
    """
    Completion percentage of a track: (ordinal + 1) / N * 100.
    The mounting track's N excludes not-applicable, which reports 0.
    """
    t = as_track(track)
    stage = parse_stage(t, key)
    if stage is MountingStage.NOT_APPLICABLE:
        return 0.0
    counted = [d for d in stage_catalog(t) if d.key != MountingStage.NOT_APPLICABLE.value]
    return (ordinal_of(t, stage) + 1) / len(counted) * 100
