"""Stage ordering helpers and collectedData merge policies."""

from heysme_db.models.enums import Stage

from heysme_agent.constants import STAGE_ORDER, STAGE_WEIGHTS
from heysme_agent.merge import merge_additive, merge_append, merge_replace
from heysme_agent.stages import (
    default_successor,
    is_forward,
    parse_stage,
    progress_for,
)


# =====================================================================
# Stage ordering
# =====================================================================

class TestStageOrder:

    def test_fixed_forward_order(self):
        assert [s.value for s in STAGE_ORDER] == [
            "collecting", "confirming", "generating", "ready",
        ]

    def test_weights_are_non_decreasing(self):
        weights = [STAGE_WEIGHTS[s] for s in STAGE_ORDER]
        assert weights == sorted(weights)
        assert weights[0] == 0
        assert weights[-1] == 100

    def test_default_successor(self):
        assert default_successor(Stage.COLLECTING) == Stage.CONFIRMING
        assert default_successor(Stage.GENERATING) == Stage.READY
        assert default_successor(Stage.READY) is None

    def test_is_forward(self):
        assert is_forward(Stage.COLLECTING, Stage.GENERATING)
        assert not is_forward(Stage.GENERATING, Stage.COLLECTING)
        assert not is_forward(Stage.CONFIRMING, Stage.CONFIRMING)

    def test_progress_for(self):
        assert progress_for(Stage.COLLECTING) == 0
        assert progress_for(Stage.READY) == 100

    def test_parse_stage(self):
        assert parse_stage("confirming") == Stage.CONFIRMING
        assert parse_stage(Stage.READY) == Stage.READY
        assert parse_stage("finished") is None


# =====================================================================
# Merge policies
# =====================================================================

class TestMergeAdditive:

    def test_adds_new_keys(self):
        assert merge_additive({"role": "dev"}, {"years": 5}) == {"role": "dev", "years": 5}

    def test_keeps_existing_scalar(self):
        merged = merge_additive({"role": "dev"}, {"role": "manager"})
        assert merged["role"] == "dev", "Collected value must not be silently overwritten"

    def test_superseded_overwrites(self):
        merged = merge_additive({"role": "dev"}, {"role": "manager"}, superseded=["role"])
        assert merged["role"] == "manager"

    def test_fills_empty_value(self):
        assert merge_additive({"role": ""}, {"role": "dev"})["role"] == "dev"

    def test_extends_lists_without_duplicates(self):
        merged = merge_additive({"skills": ["go", "sql"]}, {"skills": ["sql", "python"]})
        assert merged["skills"] == ["go", "sql", "python"]

    def test_merges_nested_dicts(self):
        merged = merge_additive(
            {"location": {"city": "Oslo"}},
            {"location": {"city": "Bergen", "country": "NO"}},
        )
        assert merged == {"location": {"city": "Oslo", "country": "NO"}}

    def test_does_not_mutate_inputs(self):
        current = {"skills": ["go"]}
        updates = {"skills": ["rust"]}
        merge_additive(current, updates)
        assert current == {"skills": ["go"]}
        assert updates == {"skills": ["rust"]}


class TestMergeReplaceAppend:

    def test_replace_overwrites(self):
        assert merge_replace({"role": "dev", "x": 1}, {"role": "lead"}) == {"role": "lead", "x": 1}

    def test_append_creates_list(self):
        assert merge_append({}, {"notes": "first"}) == {"notes": ["first"]}

    def test_append_promotes_scalar(self):
        assert merge_append({"notes": "first"}, {"notes": "second"}) == {"notes": ["first", "second"]}

    def test_append_extends_with_list(self):
        assert merge_append({"notes": ["a"]}, {"notes": ["b", "c"]}) == {"notes": ["a", "b", "c"]}
