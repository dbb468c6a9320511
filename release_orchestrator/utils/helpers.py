"""Small formatting helpers shared by the runner and the CLI."""

import uuid


def generate_id(prefix: str = "", length: int = 8) -> str:
    """Random identifier such as ``run-3f2a9c1e``."""
    token = uuid.uuid4().hex[:length]
    return f"{prefix}-{token}" if prefix else token


def format_duration(seconds: float) -> str:
    """Render a duration as ``850ms``, ``12.3s`` or ``4m 05s``."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rest = divmod(int(round(seconds)), 60)
    if minutes < 60:
        return f"{minutes}m {rest:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Shorten ``text`` to at most ``max_length`` characters, marking the cut."""
    if len(text) <= max_length:
        return text
    return text[:max(max_length - len(suffix), 0)] + suffix
