"""
Tests for prompt building.
"""
from memorybook.core.prompt import build_prompt, format_memory_line
from memorybook.storage.models import Memory


HEADER = (
    "Write a monthly storybook for Mia. Use warm, family-friendly language and "
    "create section titles for each memory. Keep it fit for printing and reading "
    "aloud. Memories:\n\n"
)


class TestBuildPrompt:
    """Test prompt text produced from memories."""

    def test_no_memories(self):
        """Header only when there are no memories."""
        assert build_prompt("Mia", "monthly", []) == HEADER

    def test_names_child_and_interval(self):
        """The instruction names the child and the interval."""
        prompt = build_prompt("Leo", "weekly", [])
        assert prompt.startswith("Write a weekly storybook for Leo.")

    def test_memory_lines_in_given_order(self):
        """One line per memory, order preserved, no dedup."""
        memories = [
            Memory(id=2, child_id=1, note="Later", taken_at="2026-02-01"),
            Memory(id=1, child_id=1, note="Earlier", taken_at="2026-01-01"),
            Memory(id=3, child_id=1, note="Earlier", taken_at="2026-01-01"),
        ]

        prompt = build_prompt("Mia", "monthly", memories)

        assert prompt == HEADER + (
            "- 2026-02-01: Later \n"
            "- 2026-01-01: Earlier \n"
            "- 2026-01-01: Earlier \n"
        )

    def test_missing_fields_use_placeholders(self):
        """Absent timestamp is 'unknown' and absent note is empty."""
        line = format_memory_line(Memory(id=1, child_id=1))
        assert line == "- unknown:  \n"

    def test_image_reference_in_parentheses(self):
        """Image paths are appended in parentheses."""
        line = format_memory_line(
            Memory(id=1, child_id=1, note="Beach day", image_path="photos/beach.jpg",
                   taken_at="2026-07-04T10:00:00Z"))
        assert line == "- 2026-07-04T10:00:00Z: Beach day (image: photos/beach.jpg)\n"

    def test_content_passed_through_unsanitized(self):
        """Markup in notes reaches the prompt unchanged."""
        prompt = build_prompt("Mia", "monthly", [Memory(id=1, child_id=1, note="<b>hi</b>")])
        assert "<b>hi</b>" in prompt
