"""Display helpers for counts."""


def format_number(number: int) -> str:
    """Decimal format with thousands separators, e.g. 12,345."""
    return f"{number:,}"


def compact_count(count: int) -> str:
    """Menu-bar style count: 999, 1.2k, 15.0k."""
    if count >= 1000:
        return f"{count / 1000.0:.1f}k"
    return str(count)


def bar(value: int, maximum: int, width: int = 30) -> str:
    """Proportional text bar; non-zero values always get at least one block."""
    if maximum <= 0 or value <= 0:
        return ""
    return "█" * max(1, round(value / maximum * width))
