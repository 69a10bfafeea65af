from typing import Optional

SIZE_UNITS = ["B", "K", "M", "G", "T", "P", "E", "Z", "Y"]


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as HH:MM:SS (hours are not wrapped)."""
    if seconds is None:
        return "--"
    total = max(0, int(seconds))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def human_size(size_bytes: Optional[int]) -> str:
    """Format size: 0.00B, 1.50K, 45.12M, 3.20G."""
    size = float(max(0, size_bytes or 0))
    idx = 0
    while size >= 1024.0 and idx < len(SIZE_UNITS) - 1:
        size /= 1024.0
        idx += 1
    return f"{size:.2f}{SIZE_UNITS[idx]}"


def format_percent(index: int, total: int) -> str:
    """Fixed-width progress percentage used on job lines."""
    if total <= 0:
        return "  0.0"
    return f"{index * 100.0 / total:5.1f}"


def printable(text: str) -> str:
    """Replaces undecodable filename bytes with U+FFFD.

    Names that are not valid UTF-8 arrive surrogate-escaped (PEP 383) and
    cannot be written to a UTF-8 stream as they are.
    """
    try:
        raw = text.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        raw = text.encode("utf-8", "surrogatepass")
    return raw.decode("utf-8", "replace")


def format_eta(seconds: Optional[float]) -> str:
    return f"ETA: {format_duration(seconds)}"
