from typing import Dict, Tuple

JEE = "JEE"
NEET = "NEET"
EXAM_TYPES: Tuple[str, ...] = (JEE, NEET)

CLASSES = "classes"
DEFAULT_SUBJECT = "physics"

SUBJECTS_BY_EXAM: Dict[str, Tuple[str, ...]] = {
    JEE: ("physics", "chemistry", "mathematics", CLASSES),
    NEET: ("physics", "chemistry", "botany", "zoology", CLASSES),
}

DEFAULT_MAX_MARKS: Dict[str, int] = {
    JEE: 100,
    NEET: 180,
}


def validate_exam_type(exam_type: str) -> str:
    if exam_type not in SUBJECTS_BY_EXAM:
        raise ValueError(f"Unsupported exam type: {exam_type}. Use JEE or NEET.")
    return exam_type


def subjects_for(exam_type: str) -> Tuple[str, ...]:
    return SUBJECTS_BY_EXAM[validate_exam_type(exam_type)]


def scored_subjects(exam_type: str) -> Tuple[str, ...]:
    """Subjects that carry question counts and test marks."""
    return tuple(subject for subject in subjects_for(exam_type) if subject != CLASSES)


def default_subject_names(exam_type: str) -> Dict[str, str]:
    return {subject: subject.capitalize() for subject in subjects_for(exam_type)}


def display_name(subject: str, subject_names: Dict[str, str]) -> str:
    return subject_names.get(subject) or subject.capitalize()


def format_duration(seconds: int) -> str:
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
