from dataclasses import dataclass, field
from studytrackr.core.subjects import DEFAULT_SUBJECT
from studytrackr.state.session_state import SessionState
from studytrackr.state.study_state import StudyState


@dataclass
class AppState:
    session: SessionState = field(default_factory=SessionState)
    study: StudyState = field(default_factory=StudyState)
    active_subject: str = DEFAULT_SUBJECT
