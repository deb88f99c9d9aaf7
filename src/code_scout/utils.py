"""Utility functions for code-scout."""


def truncate_output(text: str, max_length: int = 30000) -> str:
    """Truncate output to max_length characters.

    Args:
        text: The text to truncate
        max_length: Maximum length (default 30000)

    Returns:
        Truncated text with indicator appended
    """
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    indicator = f"\n\n[Output truncated - showing first {max_length} of {len(text)} characters]"
    return truncated + indicator


def format_tokens(count: int) -> str:
    """Compact token count for display, e.g. 1234 -> '1.2k'."""
    if count < 1000:
        return str(count)
    return f"{count / 1000:.1f}k"
