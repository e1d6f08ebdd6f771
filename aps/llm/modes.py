"""Operating modes: pick the completion client the orchestrator is built with."""

from aps.config import get_config
from aps.llm.client import CompletionClient
from aps.llm.errors import AuthError
from aps.llm.scripted import FallbackCompletionClient, ScriptedCompletionClient

VALID_MODES = {"simulation", "ai", "hybrid"}


def make_client(mode: str | None = None, on_fallback=None):
    """Return the completion client for an operating mode.

    - simulation: scripted responses only.
    - ai: the live service; raises AuthError when no API key is configured.
    - hybrid: live service when available, scripted responses otherwise or
      after the first live failure.
    """
    mode = mode or get_config().get("mode", "hybrid")
    if mode not in VALID_MODES:
        raise ValueError(f"Invalid mode '{mode}'. Must be one of: {VALID_MODES}")

    if mode == "simulation":
        return ScriptedCompletionClient()

    live = CompletionClient()
    if mode == "ai":
        if not live.is_available():
            raise AuthError("AI mode requested but Gemini API key not configured.")
        return live

    return FallbackCompletionClient(live, on_fallback=on_fallback)
