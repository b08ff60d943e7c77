"""Scoring for submitted attempts.

``score_attempt`` is pure: it only reads the quiz's question list, the answers
and the answer key. Scores are signed; negative marking may push them below
zero and they are stored that way. ``display_percentage`` is the only place
that clamps, for presentation.
"""

from dataclasses import dataclass
from typing import Any, Mapping

from schemas import QuizDefinition


@dataclass
class ScoreResult:
    score: float
    totalPoints: float
    correct: int = 0
    incorrect: int = 0
    unanswered: int = 0


def normalize_answer(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_answered(value: Any) -> bool:
    return normalize_answer(value) != ""


def is_correct(value: Any, correct_index: Any) -> bool:
    return is_answered(value) and normalize_answer(value) == normalize_answer(correct_index)


def score_attempt(
    quiz: QuizDefinition,
    answers: Mapping[str, Any],
    answer_key: Mapping[str, Any],
) -> ScoreResult:
    """Score answers against the key for every question the quiz includes.

    Correct answers earn the question's points. With negative marking on, a
    wrong non-blank answer costs ``negativePoints``; blank answers cost nothing.
    Answers for questions outside the quiz are ignored.
    """
    result = ScoreResult(score=0.0, totalPoints=0.0)
    for qq in quiz.questions:
        result.totalPoints += qq.points
        value = answers.get(qq.questionId)
        if qq.questionId not in answer_key:
            # No key to grade against; neither reward nor penalize
            result.unanswered += 1
        elif not is_answered(value):
            result.unanswered += 1
        elif is_correct(value, answer_key[qq.questionId]):
            result.correct += 1
            result.score += qq.points
        else:
            result.incorrect += 1
            if quiz.negativeMarking:
                result.score -= quiz.negativePoints
    return result


def display_percentage(score: float | None, total_points: float) -> float:
    """Score as a percentage clamped to [0, 100] for display."""
    if score is None or total_points <= 0:
        return 0.0
    return round(min(100.0, max(0.0, score / total_points * 100.0)), 2)
