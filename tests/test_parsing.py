"""Tests for lenient JSON extraction from model output."""

from browsing_kg.ai.parsing import ParseError, Parsed, extract_json_block, parse_json_response
from browsing_kg.models.plans import MatchResult, SectionUpdate, UpdatePlan
from browsing_kg.models.entities import SectionType


class TestExtractJsonBlock:
    def test_plain_object(self):
        assert extract_json_block('{"a": 1}') == '{"a": 1}'

    def test_surrounded_by_prose_and_fences(self):
        text = 'Sure!\n```json\n{"a": {"b": 2}}\n```\nAnything else? {"c": 3}'
        assert extract_json_block(text) == '{"a": {"b": 2}}'

    def test_braces_inside_strings(self):
        text = '{"content": "use } and { freely", "n": "\\"}"} trailing'
        assert extract_json_block(text) == '{"content": "use } and { freely", "n": "\\"}"}'

    def test_no_object(self):
        assert extract_json_block("no json here") is None

    def test_unterminated(self):
        assert extract_json_block('{"a": {"b": 1}') is None


class TestParseJsonResponse:
    def test_valid(self):
        result = parse_json_response(
            'Result: {"assignments": [{"constellation_index": 0, "page_indices": [1]}]}',
            MatchResult,
        )
        assert isinstance(result, Parsed)
        assert result.value.assignments[0]["page_indices"] == [1]

    def test_invalid_json(self):
        result = parse_json_response("{not json}", MatchResult)
        assert isinstance(result, ParseError)
        assert result.reason.startswith("invalid JSON")

    def test_missing_object(self):
        result = parse_json_response("", UpdatePlan)
        assert isinstance(result, ParseError)

    def test_schema_mismatch(self):
        result = parse_json_response('{"something": []}', UpdatePlan)
        assert isinstance(result, ParseError)
        assert "schema" in result.reason

    def test_null_assignments(self):
        result = parse_json_response('{"assignments": null}', MatchResult)
        assert isinstance(result, Parsed)
        assert result.value.assignments == []


class TestSectionUpdate:
    def test_order_defaults_from_type(self):
        update = SectionUpdate.model_validate(
            {"section_key": "next_steps", "section_type": "next_steps", "action": "update"}
        )
        assert update.order_index == 500

    def test_key_is_stripped(self):
        update = SectionUpdate.model_validate(
            {"section_key": "  overview ", "section_type": "overview", "action": "create"}
        )
        assert update.section_key == "overview"
        assert update.section_type == SectionType.OVERVIEW
