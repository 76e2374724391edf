# race_notifier_service/app/points_systems.py
"""Championship points awarded per finishing position, by category.

Used to infer where a driver finished from how many points they gained
between two standings snapshots.
"""
from typing import Dict, List

POINTS_SYSTEMS: Dict[str, Dict[str, List[int]]] = {
    "f1": {
        "race": [25, 18, 15, 12, 10, 8, 6, 4, 2, 1],
        "sprint": [8, 7, 6, 5, 4, 3, 2, 1],
    },
    "motogp": {
        "race": [25, 20, 16, 13, 11, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1],
        "sprint": [12, 9, 7, 6, 5, 4, 3, 2, 1],
    },
    "indycar": {
        "race": [50, 40, 35, 32, 30, 28, 26, 24, 22, 20, 19, 18, 17, 16, 15,
                 14, 13, 12, 11, 10, 9, 8, 7, 6, 5],
    },
}

UNKNOWN_POSITION = 0


def determine_position_from_points(category: str, points: float) -> int:
    """
    Reverse-looks up a 1-based finishing position for `points`.

    The race table takes precedence over the sprint table, so a value present
    in both resolves to the race position. Returns UNKNOWN_POSITION when the
    category is unknown or no table awards exactly that many points.
    """
    system = POINTS_SYSTEMS.get(category.lower())
    if not system:
        return UNKNOWN_POSITION

    for session_kind in ("race", "sprint"):
        table = system.get(session_kind)
        if table and points in table:
            return table.index(points) + 1

    return UNKNOWN_POSITION


def position_text(position: int) -> str:
    if position > 0:
        return f"terminó {position}º"
    return "sumó puntos"


def format_points(points: float) -> str:
    """25.0 -> '25', 12.5 -> '12.5'"""
    return f"{points:g}"
