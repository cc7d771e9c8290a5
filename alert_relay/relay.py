"""
Relay decision logic.

Maps a classifier verdict to a notification action. Unchanged verdicts are
suppressed so the channel only hears about transitions; dangerous states
alert, safe states post silently.
"""

from alert_relay.models import ClassificationResult, RelayAction

DANGER_GLYPH = "🚨"
SAFE_GLYPH = "✅"


def format_body(result: ClassificationResult) -> str:
    """Indicator glyph followed by the judgment text."""
    glyph = DANGER_GLYPH if result.danger else SAFE_GLYPH
    return f"{glyph} {result.text}"


def decide(result: ClassificationResult) -> RelayAction | None:
    """Decide what to relay for a verdict.

    Args:
        result: Classifier verdict

    Returns:
        RelayAction to post, or None when the status did not change

    Example:
        >>> decide(ClassificationResult("Explosions reported", True, True))
        RelayAction(send=True, silent=False, body='🚨 Explosions reported')
    """
    if not result.status_changed:
        return None
    return RelayAction(send=True, silent=not result.danger, body=format_body(result))
