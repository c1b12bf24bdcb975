"""
Text utilities for preparing generated text for delivery to a chat platform.
"""
import re
from typing import List


# A run of non-whitespace plus the whitespace that follows it (or end of text)
_WORD_PATTERN = re.compile(r"[^\s]*(?:\s+|$)")


def normalize_newlines(text: str) -> str:
    """Convert CRLF and lone CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def segment_text(text: str, max_length: int) -> List[str]:
    """
    Split text into chunks no longer than ``max_length`` characters.

    Words are kept whole where possible. When a chunk has to be closed and it
    already contains a line break, it is closed after its last line break so
    paragraphs stay together. A single word longer than ``max_length`` is cut,
    and when the cut lands inside the word its last character becomes a
    hyphen.

    Args:
        text: Text to split
        max_length: Maximum length of each chunk

    Returns:
        Trimmed, non-empty chunks in order

    Raises:
        ValueError: If max_length is smaller than 1
    """
    if max_length < 1:
        raise ValueError("max_length must be at least 1")

    remaining = normalize_newlines(text).strip()
    segments: List[str] = []
    segment = ""
    position = 0

    def flush(value: str) -> None:
        value = value.strip()
        if value:
            segments.append(value)

    while position < len(remaining):
        word = _WORD_PATTERN.match(remaining, position).group(0)
        if not word:
            break
        suffix = ""

        if len(segment) + len(word) > max_length:
            # Prefer closing the chunk at a paragraph boundary
            newline = segment.rfind("\n")
            if newline != -1:
                flush(segment[:newline + 1])
                segment = segment[newline + 1:]
                continue

            flush(segment)
            segment = ""

            if len(word) > max_length:
                inside_word = not word[max_length - 1].isspace() and not word[max_length].isspace()
                word = word[:max_length]
                if max_length > 1 and inside_word:
                    word = word[:-1]
                    suffix = "-"

        position += len(word)
        segment += word + suffix

    flush(segment)
    return segments
