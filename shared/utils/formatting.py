"""Text formatting helpers for prompt and message assembly."""


def format_number(value: float | int | None) -> str:
    """Render a number the way a person would write it: 85.0 -> '85', 82.5 -> '82.5'."""
    if value is None:
        return "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_percent_trend(values: list, count: int = 3) -> str:
    """Render the first `count` accuracy values as '85%, 80%, 75%'."""
    return "%, ".join(format_number(v) for v in values[:count]) + "%"
