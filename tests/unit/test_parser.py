"""Tests for the response parser."""

import json

import pytest

from grant_ingest.extraction.parser import (
    iter_balanced_spans,
    parse_bare_array,
    parse_direct_json,
    parse_fenced_block,
    parse_grants_object,
    parse_response,
    parse_text,
    resolve_text,
)


class TestResolveText:
    """Tests for resolve_text function."""

    def test_string_payload(self):
        """Test a string payload is used as-is."""
        assert resolve_text("hello") == "hello"

    def test_result_data_first(self):
        """Test result.data beats result and data."""
        payload = {"result": {"data": "inner"}, "data": "outer"}
        assert resolve_text(payload) == "inner"

    def test_result_string(self):
        """Test a string result."""
        assert resolve_text({"result": "text result"}) == "text result"

    def test_result_object(self):
        """Test an object result is serialized."""
        payload = {"result": {"grants": [], "errors": []}}
        assert json.loads(resolve_text(payload)) == {"grants": [], "errors": []}

    def test_data_wrapper(self):
        """Test data is used when result is absent."""
        payload = {"data": {"grants": [{"grant_title": "A"}]}}
        assert json.loads(resolve_text(payload)) == {"grants": [{"grant_title": "A"}]}

    def test_whole_payload(self):
        """Test an unwrapped payload is serialized whole."""
        payload = {"grants": [], "errors": ["No grants found on this page"]}
        assert json.loads(resolve_text(payload)) == payload


class TestStrategies:
    """Tests for the individual parse strategies."""

    def test_direct_json_object(self):
        """Test whole-text JSON object."""
        assert parse_direct_json('  {"grants": []}  ') == {"grants": []}

    def test_direct_json_rejects_scalars(self):
        """Test scalars do not count as a parsed payload."""
        assert parse_direct_json('"just a string"') is None
        assert parse_direct_json("42") is None

    def test_direct_json_rejects_prose(self):
        """Test prose fails the direct parse."""
        assert parse_direct_json('Here: {"grants": []}') is None

    def test_fenced_block(self):
        """Test first fenced block, any language tag."""
        text = "Result:\n```json\n{\"grants\": []}\n```\nand\n```\n[1]\n```"
        assert parse_fenced_block(text) == {"grants": []}

    def test_fenced_block_without_tag(self):
        """Test a fence without a language tag."""
        assert parse_fenced_block("```\n[{\"grant_title\": \"A\"}]\n```") == [{"grant_title": "A"}]

    def test_grants_object_skips_unrelated(self):
        """Test objects without "grants" are skipped."""
        text = 'Page meta {"page": 1} then {"grants": [{"grant_title": "A"}], "errors": []} done.'
        assert parse_grants_object(text) == {"grants": [{"grant_title": "A"}], "errors": []}

    def test_grants_object_braces_in_strings(self):
        """Test braces inside string literals do not end the span."""
        text = 'Found {"grants": [{"grant_title": "Use } and { carefully"}]} ok'
        assert parse_grants_object(text) == {"grants": [{"grant_title": "Use } and { carefully"}]}

    def test_bare_array(self):
        """Test a bare grants array in prose."""
        text = 'Found: [{"grant_title": "A"}, {"grant_title": "B"}] done'
        assert parse_bare_array(text) == [{"grant_title": "A"}, {"grant_title": "B"}]

    def test_unterminated_span(self):
        """Test an unterminated object yields nothing."""
        assert list(iter_balanced_spans('prefix {"grants": [', "{", "}")) == []


class TestParseText:
    """Tests for strategy ordering."""

    def test_fenced_before_object_scan(self):
        """Test prose around a fenced block is handled by the fence strategy."""
        text = 'Here is the result:\n```json\n{"grants":[{"grant_title":"X"}],"errors":[]}\n```'

        strategy, value = parse_text(text)

        assert strategy == "fenced_block"
        assert value["grants"][0]["grant_title"] == "X"

    def test_direct_first(self):
        """Test plain JSON uses the direct strategy."""
        strategy, _ = parse_text('{"grants": []}')
        assert strategy == "direct_json"

    def test_nothing_matches(self):
        """Test unparseable text."""
        assert parse_text("no json here") == (None, None)


class TestParseResponse:
    """Tests for parse_response function."""

    def test_fenced_example(self):
        """Test the fenced example yields one grant."""
        raw = 'Here is the result:\n```json\n{"grants":[{"grant_title":"X"}],"errors":[]}\n```'

        parsed = parse_response(raw)

        assert [g.grant_title for g in parsed.grants] == ["X"]
        assert parsed.errors == []
        assert parsed.strategy == "fenced_block"

    def test_decoded_object(self):
        """Test an already decoded payload."""
        parsed = parse_response({"grants": [{"grant_title": "A", "deadline_date": "May 1, 2026"}], "errors": []})

        assert len(parsed.grants) == 1
        assert parsed.grants[0].deadline_date == "2026-05-01"

    def test_result_data_wrapper(self):
        """Test a result.data wrapper holding prose."""
        raw = {"result": {"data": 'I found: {"grants": [{"grant_title": "A"}], "errors": []}'}}

        parsed = parse_response(raw)

        assert [g.grant_title for g in parsed.grants] == ["A"]
        assert parsed.strategy == "grants_object"

    def test_bare_array_payload(self):
        """Test a bare array becomes the grants list with no errors."""
        parsed = parse_response('Results: [{"grant_title": "A"}, {"title": "B"}]')

        assert [g.grant_title for g in parsed.grants] == ["A", "B"]
        assert parsed.errors == []

    def test_no_grants_found(self):
        """Test the agent's no-grants answer."""
        parsed = parse_response({"grants": [], "errors": ["No grants found on this page"]})

        assert parsed.grants == []
        assert parsed.errors == ["No grants found on this page"]

    def test_unparseable(self):
        """Test an unparseable payload yields one diagnostic error."""
        parsed = parse_response("Sorry, I could not access the page.")

        assert parsed.grants == []
        assert parsed.errors == ["Could not parse response: Sorry, I could not access the page."]

    def test_unparseable_excerpt_bounded(self):
        """Test the diagnostic keeps only a prefix of the text."""
        parsed = parse_response("x" * 500)

        assert parsed.errors == ["Could not parse response: " + "x" * 200]

    @pytest.mark.parametrize("raw", [None, "", 42])
    def test_degenerate_payloads(self, raw):
        """Test degenerate payloads never raise."""
        parsed = parse_response(raw)

        assert parsed.grants == []
        assert len(parsed.errors) == 1

    def test_non_object_entries_dropped(self):
        """Test non-object grant entries are skipped."""
        parsed = parse_response({"grants": ["junk", 5, {"grant_title": "A"}]})

        assert [g.grant_title for g in parsed.grants] == ["A"]

    def test_errors_coerced_to_text(self):
        """Test error entries become strings and nulls are dropped."""
        parsed = parse_response({"grants": [], "errors": ["x", None, 404]})

        assert parsed.errors == ["x", "404"]

    def test_structured_errors_as_json(self):
        """Test object error entries are kept as JSON text."""
        parsed = parse_response({"grants": [], "errors": [{"message": "Login required", "code": 403}]})

        assert len(parsed.errors) == 1
        assert json.loads(parsed.errors[0]) == {"message": "Login required", "code": 403}

    def test_grants_not_a_list(self):
        """Test a non-list grants field yields no grants."""
        parsed = parse_response({"grants": "none", "errors": "oops"})

        assert parsed.grants == []
        assert parsed.errors == []
