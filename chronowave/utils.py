"""Small formatting helpers for the console."""


def fmt_time(seconds: float) -> str:
    """mm:ss, or h:mm:ss past the hour (offset seeds run up to two hours)."""
    total_s = int(seconds)
    h, rem = divmod(total_s, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def fmt_size(num_bytes: int) -> str:
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.0f}KB"
    return f"{num_bytes / (1024 * 1024):.1f}MB"
