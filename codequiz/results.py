"""
Result compilation for finished quiz sessions.
"""
import math
from typing import List

from .models import (
    AnswerMark, LeaderboardEntry, ResultTier, Results, ReviewItem, SessionState
)

NOT_ANSWERED = "Not answered"

# Highest threshold first
RESULT_TIERS = (
    ResultTier(90, "🏆 Excellent!"),
    ResultTier(70, "🌟 Great Job!"),
    ResultTier(50, "👍 Good Effort!"),
    ResultTier(0, "📚 Keep Learning!"),
)


def is_answer_correct(session: SessionState, index: int) -> bool:
    """Check whether the recorded answer for a question matches its correct option."""
    answer = session.answers[index]
    if isinstance(answer, AnswerMark):
        return False
    return answer == session.questions[index].relocated_correct_index


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_percentage(correct: int, total: int) -> int:
    """
    Percentage of correct answers, rounded half up.

    Examples:
        7/10 -> 70, 1/3 -> 33, 2/3 -> 67
    """
    if total <= 0:
        return 0
    return round_half_up(correct / total * 100)


def compile_results(session: SessionState) -> Results:
    """
    Derive the score summary from a terminal session.

    Skipped and unset answers count as wrong.
    """
    total = len(session.questions)
    correct = sum(1 for i in range(total) if is_answer_correct(session, i))

    return Results(
        score=session.score,
        correct=correct,
        wrong=total - correct,
        total=total,
        percentage=calculate_percentage(correct, total),
        time_taken=session.total_time_seconds - session.remaining_time_seconds,
        category=session.category
    )


def build_review(session: SessionState) -> List[ReviewItem]:
    """Build one review item per question, in presentation order."""
    review = []
    for i, presented in enumerate(session.questions):
        answer = session.answers[i]
        was_skipped = isinstance(answer, AnswerMark)
        review.append(ReviewItem(
            question_text=presented.text,
            presented_options=presented.shuffled_options,
            user_answer_text=NOT_ANSWERED if was_skipped else presented.shuffled_options[answer],
            correct_answer_text=presented.correct_option,
            is_correct=is_answer_correct(session, i),
            was_skipped=was_skipped
        ))
    return review


def leaderboard_entry(results: Results, username: str) -> LeaderboardEntry:
    """Project results into the record stored on the leaderboard."""
    return LeaderboardEntry(
        username=username,
        category=results.category,
        score=results.score,
        time_taken=results.time_taken,
        correct=results.correct,
        total=results.total
    )


def result_tier(percentage: int) -> ResultTier:
    """Pick the headline for a percentage."""
    for tier in RESULT_TIERS:
        if percentage >= tier.min_percentage:
            return tier
    return RESULT_TIERS[-1]
