"""Tests for the scripted stand-in client, the hybrid fallback and mode selection."""

from unittest.mock import MagicMock, patch

import pytest

from aps.llm.client import CompletionClient
from aps.llm.errors import AuthError, EmptyResponseError, RateLimitedError
from aps.llm.modes import make_client
from aps.llm.scripted import (
    CANNED_PAYLOADS,
    FallbackCompletionClient,
    ScriptedCompletionClient,
    render_canned,
)
from aps.utils.parsing import StructuredOk, extract


class TestScriptedCompletionClient:
    def test_answers_by_phase_tag(self):
        client = ScriptedCompletionClient()
        completion = client.send("system", "[PHASE: DESIGNING]\n\nmake it pretty", [])
        assert completion.phase == "designing"
        result = extract(completion.text, "designing")
        assert isinstance(result, StructuredOk)
        assert result.payload["design_tokens"]["theme"] == "dark"

    def test_every_canned_payload_parses(self):
        for phase in CANNED_PAYLOADS:
            assert isinstance(extract(render_canned(phase), phase), StructuredOk)

    def test_queue_is_consumed_first(self):
        client = ScriptedCompletionClient(responses=["first"])
        assert client.send("s", "[PHASE: PLANNING]", []).text == "first"
        assert client.send("s", "[PHASE: PLANNING]", []).phase == "planning"

    def test_queued_exception_is_raised(self):
        client = ScriptedCompletionClient(responses=[RateLimitedError("slow down")])
        with pytest.raises(RateLimitedError):
            client.send("s", "[PHASE: PLANNING]", [])

    def test_unknown_phase_raises_empty_response(self):
        with pytest.raises(EmptyResponseError):
            ScriptedCompletionClient().send("s", "no tag here", [])

    def test_records_calls_with_history_copy(self):
        client = ScriptedCompletionClient()
        history = [("user", "a"), ("model", "b")]
        client.send("s", "[PHASE: PLANNING]", history)
        history.append(("user", "c"))
        assert client.calls[0][2] == [("user", "a"), ("model", "b")]


class TestFallbackCompletionClient:
    def _primary(self, available=True, side_effect=None):
        primary = MagicMock()
        primary.is_available.return_value = available
        primary.send.side_effect = side_effect
        return primary

    def test_uses_primary_when_it_works(self):
        primary = self._primary()
        primary.send.side_effect = None
        primary.send.return_value = "live"
        client = FallbackCompletionClient(primary)
        assert client.send("s", "[PHASE: PLANNING]", []) == "live"
        assert client.using_fallback is False

    def test_switches_to_scripted_on_failure_and_stays(self):
        seen = []
        primary = self._primary(side_effect=AuthError("bad key"))
        client = FallbackCompletionClient(primary, on_fallback=seen.append)

        first = client.send("s", "[PHASE: PLANNING]", [])
        second = client.send("s", "[PHASE: DESIGNING]", [])

        assert first.phase == "planning"
        assert second.phase == "designing"
        assert primary.send.call_count == 1
        assert len(seen) == 1 and isinstance(seen[0], AuthError)

    def test_unavailable_primary_is_never_called(self):
        primary = self._primary(available=False)
        client = FallbackCompletionClient(primary)
        client.send("s", "[PHASE: PLANNING]", [])
        primary.send.assert_not_called()


class TestMakeClient:
    def test_simulation(self):
        assert isinstance(make_client("simulation"), ScriptedCompletionClient)

    @patch("aps.llm.client.get_api_key", return_value="k")
    def test_ai_with_key(self, _key):
        assert isinstance(make_client("ai"), CompletionClient)

    @patch("aps.llm.client.get_api_key", return_value=None)
    def test_ai_without_key_raises(self, _key):
        with pytest.raises(AuthError):
            make_client("ai")

    @patch("aps.llm.client.get_api_key", return_value=None)
    def test_hybrid_without_key_uses_scripted(self, _key):
        client = make_client("hybrid")
        assert isinstance(client, FallbackCompletionClient)
        assert client.using_fallback is True

    def test_defaults_to_config_mode(self):
        assert isinstance(make_client(), ScriptedCompletionClient)

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            make_client("turbo")
