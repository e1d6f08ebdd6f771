"""Completion client — wraps the Gemini chat model with retry/backoff and error classification.

The client is stateless between calls: the caller owns the conversation
history and appends (user, instruction) / (model, response) after every
successful send.
"""

import re
import sys
import time
from dataclasses import dataclass
from typing import Callable

import httpx
from langchain_google_genai import ChatGoogleGenerativeAI
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from aps.config import get_api_key, get_config
from aps.llm.errors import (
    AuthError,
    CompletionError,
    EmptyResponseError,
    RateLimitedError,
    ServiceUnavailableError,
    UnknownCompletionError,
)

_PHASE_TAG_RE = re.compile(r"\[PHASE:\s*(\w+)\]", re.IGNORECASE)

_PHASE_MARKERS = {
    "PLANNING": "planning",
    "DESIGNING": "designing",
    "ARCHITECTING": "architecting",
    "CODING": "coding",
    "PATCHING": "patching",
    "READY": "ready",
}

# Keyword fallbacks for SDK exceptions that carry no HTTP status.
_AUTH_HINTS = ("api key", "api_key", "401", "403", "unauthenticated", "permission_denied", "permission denied")
_RATE_HINTS = ("429", "rate limit", "quota", "resource_exhausted", "resource exhausted")
_UNAVAILABLE_HINTS = ("500", "502", "503", "504", "unavailable", "overloaded", "deadline")


def _hint_re(hints) -> re.Pattern:
    # Status codes must not match inside longer numbers.
    return re.compile(r"(?<!\d)(?:" + "|".join(re.escape(hint) for hint in hints) + r")(?!\d)")


_AUTH_RE = _hint_re(_AUTH_HINTS)
_RATE_RE = _hint_re(_RATE_HINTS)
_UNAVAILABLE_RE = _hint_re(_UNAVAILABLE_HINTS)

History = list[tuple[str, str]]


@dataclass(frozen=True)
class Completion:
    text: str
    phase: str | None = None


def extract_phase(text: str) -> str | None:
    """Return the phase named by a [PHASE: NAME] tag, if present and known."""
    match = _PHASE_TAG_RE.search(text or "")
    if not match:
        return None
    return _PHASE_MARKERS.get(match.group(1).upper())


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(exc: BaseException) -> CompletionError:
    """Map an arbitrary transport/SDK exception onto the completion error taxonomy."""
    if isinstance(exc, CompletionError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
    elif isinstance(exc, (httpx.TimeoutException, httpx.ConnectError)):
        return ServiceUnavailableError(str(exc) or exc.__class__.__name__)
    else:
        status = _status_code(exc)

    message = str(exc) or exc.__class__.__name__
    if status in (401, 403):
        return AuthError(message)
    if status == 429:
        return RateLimitedError(message)
    if status is not None and 500 <= status < 600:
        return ServiceUnavailableError(message)

    lowered = message.lower()
    if _AUTH_RE.search(lowered):
        return AuthError(message)
    if _RATE_RE.search(lowered):
        return RateLimitedError(message)
    if _UNAVAILABLE_RE.search(lowered):
        return ServiceUnavailableError(message)
    return UnknownCompletionError(message)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, CompletionError) and exc.retryable


def _response_text(response) -> str:
    """Flatten a chat-model response into plain text."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(part.get("text", ""))
        content = "".join(parts)
    return content if isinstance(content, str) else ""


def build_messages(system_instruction: str, user_instruction: str, history: History) -> list[dict]:
    """Assemble [system, *history, user] in chat-message form."""
    messages = [{"role": "system", "content": system_instruction}]
    for role, text in history:
        messages.append({"role": "assistant" if role == "model" else "user", "content": text})
    messages.append({"role": "user", "content": user_instruction})
    return messages


class CompletionClient:
    """Gemini-backed completion client.

    Args:
        llm: Optional pre-built chat model (anything with .invoke(messages)).
            Built lazily from config when omitted.
        api_key: Overrides GEMINI_API_KEY / GOOGLE_API_KEY.
        sleep: Called with the backoff delay in seconds between attempts.
    """

    def __init__(self, llm=None, api_key: str | None = None, sleep: Callable[[float], None] = time.sleep):
        self._llm = llm
        self._api_key = api_key if api_key is not None else get_api_key()
        self._sleep = sleep

    def is_available(self) -> bool:
        return self._llm is not None or bool(self._api_key)

    def _get_llm(self):
        if self._llm is None:
            if not self._api_key:
                raise AuthError(
                    "Gemini API key not configured. Set GEMINI_API_KEY in your .env file."
                )
            config = get_config()
            generation = config.get("generation", {})
            self._llm = ChatGoogleGenerativeAI(
                model=config["model"],
                google_api_key=self._api_key,
                temperature=generation.get("temperature", 0.7),
                top_k=generation.get("top_k", 40),
                top_p=generation.get("top_p", 0.95),
                max_output_tokens=generation.get("max_output_tokens", 2048),
                max_retries=0,  # retries are ours
            )
        return self._llm

    def send(self, system_instruction: str, user_instruction: str, history: History) -> Completion:
        """Send one completion request, retrying transient failures.

        Raises AuthError immediately; raises the last classified error once
        the retry budget is exhausted.
        """
        config = get_config()
        retries = config.get("llm_max_retries", 3)
        initial_delay = config.get("retry_initial_delay", 1.0)
        max_delay = config.get("retry_max_delay", 10.0)

        llm = self._get_llm()
        messages = build_messages(system_instruction, user_instruction, history)

        @retry(
            stop=stop_after_attempt(retries + 1),  # +1 because first attempt counts
            wait=wait_exponential(multiplier=initial_delay, exp_base=2, max=max_delay),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            sleep=self._sleep,
            before_sleep=lambda state: print(
                f"[APS] Transient error: {state.outcome.exception()!r}. "
                f"Retrying in {state.next_action.sleep:.1f}s "
                f"(attempt {state.attempt_number}/{retries})...",
                file=sys.stderr,
            ),
        )
        def _invoke() -> Completion:
            try:
                response = llm.invoke(messages)
            except CompletionError:
                raise
            except Exception as exc:
                raise classify_error(exc) from exc
            text = _response_text(response)
            if not text.strip():
                raise EmptyResponseError("Empty response from completion service")
            return Completion(text=text, phase=extract_phase(text))

        return _invoke()
