"""Test (mock exam) results: score sheets, derived totals and analytics."""
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from studytrackr.core.models import DEFAULT_TEST_DURATION, SubjectScore, TestResult, new_id
from studytrackr.core.subjects import DEFAULT_MAX_MARKS, scored_subjects, validate_exam_type


@dataclass(frozen=True)
class SubjectAnalytics:
    subject: str
    total_tests: int = 0
    average_score: float = 0.0
    average_score_percentage: float = 0.0
    average_accuracy: float = 0.0
    points: List[Dict] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "subject": self.subject,
            "total_tests": self.total_tests,
            "average_score": round(self.average_score, 1),
            "average_score_percentage": round(self.average_score_percentage, 1),
            "average_accuracy": round(self.average_accuracy, 1),
            "points": list(self.points),
        }


def default_score_sheet(exam_type: str) -> Dict[str, SubjectScore]:
    max_marks = DEFAULT_MAX_MARKS[validate_exam_type(exam_type)]
    return {subject: SubjectScore(total_marks=max_marks) for subject in scored_subjects(exam_type)}


def validate_scores(subjects: Dict[str, SubjectScore]) -> None:
    for name, score in subjects.items():
        if score.attempted < 0 or score.correct < 0:
            raise ValueError(f"{name}: attempted and correct cannot be negative")
        if score.correct > score.attempted:
            raise ValueError(f"{name}: correct answers cannot exceed attempted questions")
        if score.total_marks < 0:
            raise ValueError(f"{name}: total marks cannot be negative")


def build_test_result(
    *,
    exam_type: str,
    test_name: str,
    test_date: date,
    subjects: Dict[str, SubjectScore],
    now: datetime,
    duration: Optional[int] = DEFAULT_TEST_DURATION,
    rank: Optional[int] = None,
    notes: Optional[str] = None,
) -> TestResult:
    validate_exam_type(exam_type)
    if not (test_name or "").strip():
        raise ValueError("Test name is required")
    validate_scores(subjects)
    return TestResult(
        id=new_id(now),
        exam_type=exam_type,
        test_name=test_name.strip(),
        date=test_date,
        subjects=dict(subjects),
        duration=duration,
        rank=rank,
        notes=notes or None,
    )


def edit_test_result(
    result: TestResult,
    *,
    test_name: str,
    test_date: date,
    subjects: Dict[str, SubjectScore],
    duration: Optional[int] = DEFAULT_TEST_DURATION,
    rank: Optional[int] = None,
    notes: Optional[str] = None,
) -> TestResult:
    if not (test_name or "").strip():
        raise ValueError("Test name is required")
    validate_scores(subjects)
    return replace(
        result,
        test_name=test_name.strip(),
        date=test_date,
        subjects=dict(subjects),
        duration=duration,
        rank=rank,
        notes=notes or None,
    )


def results_for_exam(results: Iterable[TestResult], exam_type: str) -> List[TestResult]:
    """Results recorded under ``exam_type``, newest first."""
    return sorted(
        (result for result in results if result.exam_type == exam_type),
        key=lambda result: result.date,
        reverse=True,
    )


def subject_analytics(results: Iterable[TestResult], subject: str) -> SubjectAnalytics:
    subject_results = sorted(
        (result for result in results if subject in result.subjects),
        key=lambda result: result.date,
    )
    total_tests = len(subject_results)
    if total_tests == 0:
        return SubjectAnalytics(subject=subject)

    scores = [result.subjects[subject] for result in subject_results]
    average_score = sum(score.marks for score in scores) / total_tests
    average_max = sum(score.total_marks for score in scores) / total_tests
    total_attempted = sum(score.attempted for score in scores)
    total_correct = sum(score.correct for score in scores)

    return SubjectAnalytics(
        subject=subject,
        total_tests=total_tests,
        average_score=average_score,
        average_score_percentage=average_score / average_max * 100 if average_max > 0 else 0.0,
        average_accuracy=total_correct / total_attempted * 100 if total_attempted > 0 else 0.0,
        points=[
            {
                "date": result.date.isoformat(),
                "score": result.subjects[subject].marks,
                "accuracy": result.subjects[subject].accuracy,
            }
            for result in subject_results
        ],
    )


def results_summary(results: Iterable[TestResult]) -> Dict:
    results = list(results)
    if not results:
        return {"total_tests": 0, "average_percentage": 0.0, "best_percentage": 0.0}
    percentages = [result.percentage for result in results]
    return {
        "total_tests": len(results),
        "average_percentage": round(sum(percentages) / len(percentages), 1),
        "best_percentage": round(max(percentages), 1),
    }
