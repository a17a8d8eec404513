"""Helpers for SubRip (SRT) subtitle transcripts."""

TIME_RANGE_MARKER = "-->"


def looks_like_srt(text: str) -> bool:
    """Check for time-range markers and blank-line-delimited blocks."""
    normalized = text.replace("\r\n", "\n")
    return TIME_RANGE_MARKER in normalized and "\n\n" in normalized


def extract_text_from_srt(srt_content: str) -> str:
    """Drop cue numbers and timestamps, keeping only the spoken text.

    Each block is ``<index>\\n<start> --> <end>\\n<text lines...>``.
    """
    parts = []
    for block in srt_content.replace("\r\n", "\n").split("\n\n"):
        lines = block.strip("\n").split("\n")
        if len(lines) > 2:
            parts.append(" ".join(line.strip() for line in lines[2:] if line.strip()))
    return " ".join(part for part in parts if part).strip()
