"""Operating rules appended to the system instruction for every phase.

Condensed from the studio's operating manual into imperative rules the model
follows across Planning, Design, Architecture, Coding and Healing.
"""

_OPERATING_RULES = """\
- Follow the phase sequence strictly: PLANNING, DESIGN, ARCHITECTURE, CODING, HEALING. \
Answer only for the phase named in the [PHASE: ...] tag of the request.
- Mock Data Mandate: never build empty apps. Always provide src/lib/mockData.ts with 20+ \
realistic records (names, dates, prices). No "Lorem ipsum", no "Sample Product 1".
- No lazy coding: "// ... rest of code", "// Implement later" and TODO markers are forbidden. \
Every file must be a complete, copy-pasteable artifact.
- Aesthetic pre-seeding: define a professional palette and font pairing before any code is written.
- Respond with one fenced ```json block matching the requested output structure.\
"""


def load_guidance() -> str:
    """Return the operating rules for prompt injection.

    Returns an empty string if guidance is disabled in config
    (set guidance_enabled to false or remove it).
    """
    from aps.config import get_config

    config = get_config()
    if not config.get("guidance_enabled", False):
        return ""

    return _OPERATING_RULES
