"""Human-readable size formatting."""

_UNITS: tuple[str, ...] = ("B", "KB", "MB", "GB")


def format_bytes(size: int) -> str:
    """Format a byte count as ``B``/``KB``/``MB``/``GB`` (1024-based).

    Plain bytes show no decimals, larger units show two.
    """
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.{0 if unit == 0 else 2}f} {_UNITS[unit]}"
