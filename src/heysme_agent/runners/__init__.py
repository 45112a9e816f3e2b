"""Stage runners, one per :class:`~heysme_db.models.enums.Stage`."""

from heysme_db.models.enums import Stage

from heysme_agent.gateway import GatewayCaller
from heysme_agent.prompt import PromptManager
from heysme_agent.runners.base import RunnerOutput, StageRunner
from heysme_agent.runners.collecting import CollectingRunner
from heysme_agent.runners.confirming import ConfirmingRunner
from heysme_agent.runners.generating import GeneratingRunner
from heysme_agent.runners.ready import ReadyRunner


def build_runners(
    caller: GatewayCaller,
    prompts: PromptManager | None = None,
    *,
    required_fields: list[str] | None = None,
) -> dict[Stage, StageRunner]:
    """Default runner for every stage."""
    prompts = prompts or PromptManager()
    return {
        Stage.COLLECTING: CollectingRunner(
            caller, prompts, required_fields=required_fields,
        ),
        Stage.CONFIRMING: ConfirmingRunner(caller, prompts),
        Stage.GENERATING: GeneratingRunner(caller, prompts),
        Stage.READY: ReadyRunner(caller, prompts),
    }


__all__ = [
    "CollectingRunner",
    "ConfirmingRunner",
    "GeneratingRunner",
    "ReadyRunner",
    "RunnerOutput",
    "StageRunner",
    "build_runners",
]
