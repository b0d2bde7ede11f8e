"""ADLENS: Learning Engine.

Decides whether an entity's numbers can be trusted yet. Recomputed from
scratch every run; no state is carried between runs.
"""

from app.models.analysis_models import LearningState
from app.models.engine_config import LearningConfig


def classify_learning_state(
    days_active: int,
    days_since_last_edit: int,
    config: LearningConfig | None = None,
) -> LearningState:
    """Learning state from entity age and edit recency.

    A recent edit always wins, whatever the age.
    """
    config = config or LearningConfig()

    if days_since_last_edit < config.unstable_days:
        return LearningState.UNSTABLE
    if days_active <= config.exploration_days:
        return LearningState.EXPLORATION
    if days_active <= config.stabilizing_days:
        return LearningState.STABILIZING
    return LearningState.EXPLOITATION
