"""Helpers over the fixed stage ordering."""

from heysme_db.models.enums import Stage

from heysme_agent.constants import STAGE_ORDER, STAGE_WEIGHTS


def stage_index(stage: Stage) -> int:
    """Position of ``stage`` in the forward order."""
    return STAGE_ORDER.index(stage)


def default_successor(stage: Stage) -> Stage | None:
    """Next stage in the forward order, or ``None`` for the terminal stage."""
    idx = stage_index(stage)
    if idx + 1 < len(STAGE_ORDER):
        return STAGE_ORDER[idx + 1]
    return None


def is_forward(current: Stage, target: Stage) -> bool:
    """True when ``target`` comes strictly after ``current``."""
    return stage_index(target) > stage_index(current)


def progress_for(stage: Stage) -> int:
    """Progress percentage for a session sitting in ``stage``."""
    return STAGE_WEIGHTS[stage]


def parse_stage(value: str | Stage) -> Stage | None:
    """Coerce a stage name to :class:`Stage`; ``None`` if unknown."""
    if isinstance(value, Stage):
        return value
    try:
        return Stage(value)
    except ValueError:
        return None
