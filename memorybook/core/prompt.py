"""
Prompt building from stored memories.
"""

from typing import Iterable

from ..storage.models import Memory

PROMPT_HEADER = (
    "Write a {interval} storybook for {child_name}. Use warm, family-friendly "
    "language and create section titles for each memory. Keep it fit for "
    "printing and reading aloud. Memories:\n\n"
)

UNKNOWN_TIMESTAMP = "unknown"


def format_memory_line(memory: Memory) -> str:
    """Render one memory as a bullet line of the prompt."""
    taken_at = memory.taken_at or UNKNOWN_TIMESTAMP
    note = memory.note or ""
    image = f"(image: {memory.image_path})" if memory.image_path else ""
    return f"- {taken_at}: {note} {image}\n"


def build_prompt(child_name: str, interval: str, memories: Iterable[Memory]) -> str:
    """Turn a child's memories into a storybook instruction for the model.

    Memories are listed in the order given; no sorting, deduplication or
    sanitizing happens here.

    Args:
        child_name: Name to write the story about
        interval: Interval label such as "monthly"
        memories: Memories in chronological order

    Returns:
        Prompt text
    """
    prompt = PROMPT_HEADER.format(interval=interval, child_name=child_name)
    for memory in memories:
        prompt += format_memory_line(memory)
    return prompt
