"""ORM model registry — importing this module registers every table on Base.metadata.

Alembic ``env.py`` imports ``Base`` from here (not from ``base.py``) so that
autogenerate sees all tables.  Application code can also do::

    from fertisense.models import PlanRecord, PlanSourceEnum
"""

# ── Base & Mixins ───────────────────────────────────────────────────────────
from fertisense.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# ── Enums ───────────────────────────────────────────────────────────────────
from fertisense.models.enums import (
    NutrientEnum,
    PlanSourceEnum,
    ProductCategoryEnum,
    RatingEnum,
    RiceVarietyEnum,
    SeasonEnum,
    SoilClassEnum,
    StageEnum,
)

# ── Plan history ────────────────────────────────────────────────────────────
from fertisense.models.history import PlanRecord

__all__ = [
    # Base & mixins
    "Base",
    # Enums
    "NutrientEnum",
    # Plan history
    "PlanRecord",
    "PlanSourceEnum",
    "ProductCategoryEnum",
    "RatingEnum",
    "RiceVarietyEnum",
    "SeasonEnum",
    "SoilClassEnum",
    "StageEnum",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
]
