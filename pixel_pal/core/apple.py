"""
Apple Health export parsing.

Turns the loosely-typed payload of a Health export (strings with thousands
separators, floats, missing keys) into the clean daily summary the step
provider reads back.
"""

from datetime import date


def clean_num(v, as_int=True):
    if v is None:
        return None
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return int(v) if as_int else float(v)
    s = str(v).replace(",", "").strip()
    try:
        return int(float(s)) if as_int else float(s)
    except ValueError:
        return None


def get_apple_summary(payload: dict) -> dict:
    """
    Parse an Apple Health export payload into a clean dict.

    Returns:
    {
      "date": "2025-09-12",
      "steps": 10234,
      "exercise_minutes": 45,
      "distance_m": 7200
    }
    """
    day = payload.get("date") or date.today().isoformat()
    steps = clean_num(payload.get("steps"))

    return {
        "date": day,
        "steps": max(steps, 0) if steps is not None else None,
        "exercise_minutes": clean_num(payload.get("exercise_minutes")),
        "distance_m": clean_num(payload.get("distance_m")),
    }


def build_daily_summary(payload: dict) -> dict:
    """Wrap a parsed payload in the daily summary shape the DAL stores."""
    apple = get_apple_summary(payload)
    return {"date": apple["date"], "apple": apple}
