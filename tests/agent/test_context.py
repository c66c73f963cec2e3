"""Tests for token estimation, result compression, and scratchpad budgeting."""

import pytest
from pydantic import ValidationError

from agent.context import (
    DEFAULT_BUDGET,
    TRUNCATION_MARKER,
    ContextBudget,
    build_scratchpad,
    check_context_budget,
    compress_results,
    estimate_tokens,
    extract_summary,
    summarize_observation,
    truncate_scratchpad,
)
from agent.recall import ResultStore
from agent.types import CompressedResult, Observation, error_result, success_result


class TestEstimateTokens:
    def test_cjk(self):
        assert estimate_tokens("你好世界") == 2

    def test_latin(self):
        assert estimate_tokens("Hello world") == 3

    def test_mixed(self):
        # 2 CJK -> 1, 4 other -> 1
        assert estimate_tokens("你好abcd") == 2

    @pytest.mark.parametrize("text", ["", None])
    def test_empty(self, text):
        assert estimate_tokens(text) == 0


class TestExtractSummary:
    def test_web_search(self):
        data = {
            "query": "python tips",
            "results": [{"title": f"T{i}", "link": f"https://x/{i}"} for i in range(7)],
        }
        summary, points = extract_summary("web_search", data)
        assert summary == 'Found 7 results for "python tips"'
        assert points[0] == "T0 (https://x/0)"
        assert len(points) == 5

    def test_web_search_empty(self):
        assert extract_summary("web_search", {"results": []}) == ("No search results found", [])

    def test_web_fetch_accepts_both_key_styles(self):
        data = {
            "extractedContent": [
                {"keyPoints": ["a", "b", "c", "d"]},
                {"extracted_info": "z" * 150},
            ]
        }
        summary, points = extract_summary("web_fetch", data)
        assert summary == "Extracted content from 2 page(s)"
        assert points[:3] == ["a", "b", "c"]
        assert points[3] == "z" * 100 + "..."

    def test_memory_retrieve_message(self):
        data = {"facts": [], "message": "No memories found for this user"}
        assert extract_summary("memory_retrieve", data) == ("No memories found for this user", [])

    def test_memory_save(self):
        data = {"saved_count": 2, "facts": [{"category": "profile", "content": "Name is Ana"}]}
        summary, points = extract_summary("memory_save", data)
        assert summary == "Saved 2 fact(s) to memory"
        assert points == ["[profile] Name is Ana"]

    def test_image_generate_camel_case(self):
        summary, _ = extract_summary("image_generate", {"originalPrompt": "a red fox"})
        assert summary == "Image generated for: a red fox"

    def test_unknown_tool_truncated_json(self):
        summary, points = extract_summary("mystery", {"blob": "q" * 500})
        assert summary.startswith('{"blob": "qqq')
        assert len(summary) == 200
        assert points == []

    def test_non_dict_data(self):
        assert extract_summary("web_search", "plain text") == ("plain text", [])


class TestCompressResults:
    def test_error_result(self):
        [c] = compress_results([("web_search", error_result("rate limited"))])
        assert c.summary == "Error: rate limited"
        assert c.failed is True
        assert c.full_data_ref is None

    def test_success_without_store(self):
        [c] = compress_results([("memory_save", success_result({"saved_count": 1, "facts": []}))])
        assert c.summary == "Saved 1 fact(s) to memory"
        assert c.tokens == estimate_tokens(c.summary)
        assert c.full_data_ref is None

    def test_full_data_kept_in_store(self):
        store = ResultStore()
        data = {"query": "q", "results": [{"title": "A", "link": "L"}]}
        [c] = compress_results([("web_search", success_result(data))], result_store=store)
        assert c.full_data_ref.startswith("web_search_")
        assert store.get(c.full_data_ref).data is data

    def test_non_mapping_items_ignored(self):
        compressed = compress_results(
            [
                (
                    "web_search",
                    success_result({"query": "q", "results": ["a", {"title": "T", "link": "L"}]}),
                ),
                ("web_fetch", success_result({"extracted_content": [None, {"keyPoints": "flat"}]})),
                ("memory_retrieve", success_result({"facts": "oops", "message": "nothing"})),
                ("memory_save", success_result({"saved_count": 1, "facts": [3]})),
            ]
        )
        assert [c.summary for c in compressed] == [
            'Found 1 results for "q"',
            "Extracted content from 1 page(s)",
            "nothing",
            "Saved 1 fact(s) to memory",
        ]
        assert compressed[0].key_points == ["T (L)"]
        assert compressed[3].key_points == []

    def test_failed_results_not_stored(self):
        store = ResultStore()
        compress_results([("web_search", error_result("boom"))], result_store=store)
        assert len(store) == 0


class TestObservation:
    def test_error_flag_from_any_failure(self):
        compressed = compress_results(
            [
                ("memory_save", success_result({"saved_count": 0})),
                ("web_search", error_result("down")),
            ]
        )
        obs = summarize_observation(compressed)
        assert obs.error is True
        assert "[web_search] Error: down" in obs.summary

    def test_ref_included(self):
        obs = summarize_observation(
            [CompressedResult("web_fetch", "Extracted content from 1 page(s)", ["p"], 5, "web_fetch_1")]
        )
        assert obs.summary == (
            "[web_fetch] Extracted content from 1 page(s)\n  - p\n  (full result id: web_fetch_1)"
        )
        assert obs.error is False


class TestBuildScratchpad:
    def test_empty(self):
        assert build_scratchpad([], []) == ""

    def test_layout(self):
        pad = build_scratchpad(
            ["Look up memory", "Answer"],
            [Observation(summary="Found 1 fact", error=True)],
        )
        assert pad == (
            "## Iteration 1\n### Reasoning\nLook up memory\n"
            "### Observation\nFound 1 fact\n(Some tools encountered errors)\n\n"
            "## Iteration 2\n### Reasoning\nAnswer\n"
        )


class TestCheckContextBudget:
    def test_default_budget_has_room(self):
        check = check_context_budget("system", "history", "hi", "")
        assert check.within_budget is True
        assert check.usage == {
            "system_prompt": 2,
            "conversation_history": 2,
            "current_message": 1,
            "agent_scratchpad": 0,
        }
        assert check.remaining == DEFAULT_BUDGET.total - 5 - DEFAULT_BUDGET.response_buffer

    def test_exactly_exhausted_is_not_within(self):
        budget = ContextBudget(
            total=100,
            system_prompt=10,
            conversation_history=10,
            current_message=10,
            agent_scratchpad=10,
            response_buffer=20,
        )
        check = check_context_budget("", "", "", "x" * 320, budget)
        assert check.remaining == 0
        assert check.within_budget is False

    def test_overflow_clamps_remaining(self):
        budget = ContextBudget(
            total=100,
            system_prompt=10,
            conversation_history=10,
            current_message=10,
            agent_scratchpad=10,
            response_buffer=20,
        )
        check = check_context_budget("y" * 1000, "", "", "", budget)
        assert check.remaining == 0
        assert check.within_budget is False


class TestTruncateScratchpad:
    def _pad(self):
        return build_scratchpad(["x" * 400, "y" * 400, "z" * 400], [])

    def test_fits_unchanged(self):
        pad = self._pad()
        assert truncate_scratchpad(pad, 10_000) == pad

    def test_keeps_newest_whole_iterations(self):
        result = truncate_scratchpad(self._pad(), 250)
        assert result.startswith(TRUNCATION_MARKER)
        assert "## Iteration 1" not in result
        assert "## Iteration 2" in result
        assert "## Iteration 3" in result
        assert "x" * 400 not in result

    def test_nothing_fits(self):
        assert truncate_scratchpad(self._pad(), 50) == TRUNCATION_MARKER


class TestContextBudget:
    def test_defaults(self):
        assert DEFAULT_BUDGET.total == 30000
        assert DEFAULT_BUDGET.agent_scratchpad == 10000

    def test_over_allocation_rejected(self):
        with pytest.raises(ValidationError):
            ContextBudget(total=1000)

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            ContextBudget(response_buffer=-1)
