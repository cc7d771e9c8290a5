"""Tests for relay decisions."""

from alert_relay.models import ClassificationResult
from alert_relay.relay import DANGER_GLYPH, SAFE_GLYPH, decide, format_body


class TestDecide:
    """Tests for mapping verdicts to relay actions."""

    def test_unchanged_status_suppressed(self):
        """Test that no action is produced when the status did not change."""
        assert decide(ClassificationResult("Still dangerous", True, False)) is None
        assert decide(ClassificationResult("Still quiet", False, False)) is None

    def test_danger_change_is_loud(self):
        action = decide(ClassificationResult("Explosions reported", True, True))

        assert action.send is True
        assert action.silent is False
        assert action.body == f"{DANGER_GLYPH} Explosions reported"

    def test_safe_change_is_silent(self):
        action = decide(ClassificationResult("All clear", False, True))

        assert action.send is True
        assert action.silent is True
        assert action.body == f"{SAFE_GLYPH} All clear"

    def test_principle_not_in_body(self):
        action = decide(ClassificationResult("All clear", False, True, principle="two sources"))

        assert "two sources" not in action.body


class TestFormatBody:
    def test_glyph_then_text(self):
        assert format_body(ClassificationResult("x", True, False)) == "🚨 x"
        assert format_body(ClassificationResult("x", False, False)) == "✅ x"
