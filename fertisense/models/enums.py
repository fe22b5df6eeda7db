"""Domain enum types shared by the engine, the API schemas and the ORM.

Values double as the keys of the agronomy configuration file, so renaming a
member is a configuration format change.
"""

from enum import StrEnum

# ── Soil chemistry ──────────────────────────────────────────────────────────


class NutrientEnum(StrEnum):
    """Primary macronutrients reported by the soil sensor."""

    N = "N"
    P = "P"
    K = "K"


class RatingEnum(StrEnum):
    """Three-level fertility rating; ``not_available`` marks an invalid read."""

    low = "low"
    medium = "medium"
    high = "high"
    not_available = "n/a"


# ── Target table axes ───────────────────────────────────────────────────────


class RiceVarietyEnum(StrEnum):
    hybrid = "hybrid"
    inbred = "inbred"


class SoilClassEnum(StrEnum):
    light = "light"
    medHeavy = "medHeavy"


class SeasonEnum(StrEnum):
    wet = "wet"
    dry = "dry"


# ── Plan structure ──────────────────────────────────────────────────────────


class StageEnum(StrEnum):
    """Fixed application timeline for rice, in field order."""

    organic = "organic"
    basal = "basal"
    after_30_dat = "after_30_dat"
    top_dress = "top_dress"


STAGE_ORDER: tuple[StageEnum, ...] = (
    StageEnum.organic,
    StageEnum.basal,
    StageEnum.after_30_dat,
    StageEnum.top_dress,
)


class ProductCategoryEnum(StrEnum):
    """Role a catalog product can play in an allocation."""

    balanced = "balanced"
    n_only = "n_only"
    k_only = "k_only"
    np_base = "np_base"


class PlanSourceEnum(StrEnum):
    """Where a persisted plan record came from."""

    engine = "engine"
    da_schedule = "da_schedule"
    imported = "imported"
