"""ADLENS: Structure Engine.

Flags budget/structure pathologies:
- FRAGMENTED: too many spending sub-units for too few conversions
- OVERCONCENTRATED: one sub-unit eats most of a meaningful budget
"""

from app.models.analysis_models import StructuralState
from app.models.engine_config import StructureConfig
from app.models.snapshot_models import EntityLevel

FRAGMENTATION_LEVELS = {EntityLevel.ACCOUNT, EntityLevel.CAMPAIGN}


def is_fragmented(
    level: EntityLevel,
    active_sub_units: int,
    conversions_7d: float,
    config: StructureConfig,
) -> bool:
    if level not in FRAGMENTATION_LEVELS:
        return False
    return (
        conversions_7d < config.fragmentation_min_conversions
        and active_sub_units > config.fragmentation_adsets_max
    )


def is_overconcentrated(
    top_share: float, total_spend: float, config: StructureConfig
) -> bool:
    return (
        top_share > config.overconcentration_pct
        and total_spend > config.overconcentration_min_spend
    )


def classify_structure(
    level: EntityLevel,
    active_sub_units: int,
    conversions_7d: float,
    top_share: float,
    total_spend: float,
    config: StructureConfig | None = None,
) -> StructuralState:
    """Structural state; FRAGMENTED takes precedence when both checks fire."""
    config = config or StructureConfig()

    if is_fragmented(level, active_sub_units, conversions_7d, config):
        return StructuralState.FRAGMENTED
    if is_overconcentrated(top_share, total_spend, config):
        return StructuralState.OVERCONCENTRATED
    return StructuralState.HEALTHY
