from feed_updater.planning.planner import (
    DecisionAction,
    SkipReason,
    UpdateDecision,
    apply_change_threshold,
    decide,
)

__all__ = [
    "DecisionAction",
    "SkipReason",
    "UpdateDecision",
    "apply_change_threshold",
    "decide",
]
