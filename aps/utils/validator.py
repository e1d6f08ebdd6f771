"""Input validation — checks that the user intent is a non-empty string before a run starts."""


def validate_input(intent: str) -> str:
    """Validate that the intent is a non-empty string.

    Returns the stripped input on success.
    Raises ValueError if input is empty or whitespace-only.
    """
    if not isinstance(intent, str) or not intent.strip():
        raise ValueError("Intent must be a non-empty string.")
    return intent.strip()
