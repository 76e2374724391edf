# race_notifier_service/app/utils/session_labels.py
SESSION_LABELS = {
    "fp1": "Práctica Libre 1",
    "practice1": "Práctica Libre 1",
    "fp2": "Práctica Libre 2",
    "practice2": "Práctica Libre 2",
    "fp3": "Práctica Libre 3",
    "practice3": "Práctica Libre 3",
    "sprintqualifying": "Clasificación Sprint",
    "qualifying": "Clasificación",
    "sprint": "Sprint",
    "race": "Carrera",
}


def format_session_name(session_type: str) -> str:
    """Display label for a schedule session key; unknown keys are shown as-is."""
    return SESSION_LABELS.get(session_type.lower(), session_type)
