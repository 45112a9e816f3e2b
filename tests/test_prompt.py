"""PromptManager rendering tests."""

import jinja2
import pytest

from heysme_db.models.enums import Stage

from heysme_agent.prompt import PromptManager


@pytest.fixture(scope="module")
def prompts():
    return PromptManager()


class TestPromptManager:

    def test_collecting_lists_missing_fields(self, prompts):
        text = prompts.render_stage(
            Stage.COLLECTING, collected_data={"skills": ["go"]}, missing_fields=["role"],
        )
        assert "Still needed: role." in text
        assert '"go"' in text

    def test_collecting_without_data(self, prompts):
        text = prompts.render_stage(Stage.COLLECTING, collected_data={}, missing_fields=[])
        assert "gathered so far" not in text

    def test_confirming_shows_proposal(self, prompts):
        text = prompts.render_stage(
            Stage.CONFIRMING, collected_data={}, proposal={"role": "ingénieur"},
        )
        assert "ingénieur" in text, "Non-ASCII is kept as-is"

    def test_generating_and_ready(self, prompts):
        assert "backend" in prompts.render_stage(
            Stage.GENERATING, collected_data={"role": "backend"},
        )
        assert "My profile" in prompts.render_stage(
            Stage.READY, collected_data={}, artifact="My profile",
        )

    def test_extraction_templates(self, prompts):
        text = prompts.render(
            "collecting_extract.jinja2", collected_data={}, required_fields=["role"],
        )
        assert "Required fields: role." in text
        assert '"changes"' in prompts.render("confirming_revise.jinja2", proposal={})

    def test_missing_context_is_an_error(self, prompts):
        with pytest.raises(jinja2.UndefinedError):
            prompts.render_stage(Stage.READY, collected_data={})
