"""PromptManager — Jinja2-based system prompt renderer for stage runners.

Loads templates from the ``template/`` directory.  Each stage has a main
template (the conversational reply) and, where the stage extracts
structured data, an ``*_extract`` / ``*_revise`` template for the
schema-constrained follow-up call.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jinja2

from heysme_db.models.enums import Stage

# --- Stage-to-template mapping for the conversational reply ---
_STAGE_TEMPLATES: dict[Stage, str] = {
    Stage.COLLECTING: "collecting.jinja2",
    Stage.CONFIRMING: "confirming.jinja2",
    Stage.GENERATING: "generating.jinja2",
    Stage.READY: "ready.jinja2",
}


class PromptManager:
    """Jinja2-based prompt renderer.

    Args:
        template_dir: optional override for the template directory.
            Defaults to ``template/`` sibling of this module.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        if template_dir is None:
            template_dir = Path(__file__).parent / "template"
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            # Missing context keys are template bugs, not empty strings
            undefined=jinja2.StrictUndefined,
        )
        self._env.filters["tojson"] = lambda v: json.dumps(v, ensure_ascii=False, indent=2)

    def render_stage(
        self,
        stage: Stage,
        *,
        collected_data: dict[str, Any],
        **context: Any,
    ) -> str:
        """Render the system prompt for a stage's conversational reply."""
        return self.render(
            _STAGE_TEMPLATES[stage], collected_data=collected_data, **context,
        )

    def render(self, template_name: str, **context: Any) -> str:
        """Render a named template with arbitrary context."""
        template = self._env.get_template(template_name)
        return template.render(**context)
