from typing import Optional

_UNITS = (
    (1024 ** 3, "GiB"),
    (1024 ** 2, "MiB"),
    (1024, "KiB"),
)


def format_bytes(size: int) -> str:
    """Human-readable size in whole binary units (``3 GiB``, ``512 KiB``, ``12 B``)."""
    for factor, unit in _UNITS:
        if size >= factor:
            return f"{size // factor} {unit}"
    return f"{size} B"


def format_duration(seconds: float) -> str:
    """Formats seconds as HH:MM:SS."""
    total = max(0, int(seconds))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def format_size_line(new_size: int, percent: Optional[int], shrunk: bool) -> str:
    text = f"{new_size} bytes ({format_bytes(new_size)})"
    if percent is None:
        return text
    return f"{text}, {percent}% {'smaller' if shrunk else 'larger'}"


def format_size_change(original_total: int, final_total: int) -> str:
    if original_total <= 0:
        return "N/A (no successfully stored AV1 files)"
    saved = original_total - final_total
    magnitude = abs(saved)
    percent = magnitude * 100 // original_total
    if saved >= 0:
        return f"-{magnitude} bytes ({format_bytes(magnitude)}), {percent}% smaller"
    return f"+{magnitude} bytes ({format_bytes(magnitude)}), {percent}% larger"
