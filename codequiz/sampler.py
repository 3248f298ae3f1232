"""
Question sampling for quiz sessions.

Draws a bounded random subset of a category's questions and gives every
drawn question its own random option order.
"""
import logging
import random
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from .exceptions import NoQuestionsAvailable
from .models import PresentedQuestion, Question, QuizSettings, SessionState

logger = logging.getLogger(__name__)

T = TypeVar('T')

PoolProvider = Callable[[], Iterable[Question]]


def fisher_yates_shuffle(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """
    Return a shuffled copy of items using an unbiased Fisher-Yates pass.

    Args:
        items: Sequence to shuffle (left untouched)
        rng: Random source, module-level random if None

    Returns:
        New list with the same elements in random order
    """
    rng = rng if rng is not None else random
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def draw_questions(
    pool: Sequence[Question],
    count: int,
    rng: Optional[random.Random] = None
) -> List[Question]:
    """
    Draw up to count distinct questions from the pool.

    Note:
        If count is greater than the pool, every question is returned (in random order).
        If count is less than 1, returns empty list.
    """
    if count < 1:
        return []
    return fisher_yates_shuffle(pool, rng)[:min(count, len(pool))]


def shuffle_options(question: Question, rng: Optional[random.Random] = None) -> PresentedQuestion:
    """
    Shuffle a question's options and track where the correct one lands.

    Args:
        question: Question to present
        rng: Random source

    Returns:
        PresentedQuestion with the permuted options and relocated correct index
    """
    order = fisher_yates_shuffle(range(len(question.options)), rng)
    return PresentedQuestion(
        question=question,
        shuffled_options=tuple(question.options[i] for i in order),
        relocated_correct_index=order.index(question.correct_index)
    )


def build_session(
    category: str,
    pool_provider: PoolProvider,
    requested_count: int,
    settings: QuizSettings,
    rng: Optional[random.Random] = None
) -> SessionState:
    """
    Build a fresh, not yet started session for a category.

    Args:
        category: Category id to filter the pool by
        pool_provider: Callable returning the full question pool
        requested_count: Desired number of questions
        settings: Timing configuration
        rng: Random source

    Returns:
        SessionState with active=False

    Raises:
        NoQuestionsAvailable: If the pool has no questions for the category
    """
    pool = [q for q in pool_provider() if q.category == category]
    if not pool:
        logger.warning(
            f"No questions available for category '{category}'",
            extra={'event_type': 'setup_no_questions', 'category': category}
        )
        raise NoQuestionsAvailable(category)

    drawn = draw_questions(pool, requested_count, rng)
    questions = [shuffle_options(q, rng) for q in drawn]
    total_time = len(questions) * settings.seconds_per_question

    logger.info(
        f"Sampled {len(questions)} of {len(pool)} questions for category '{category}', "
        f"time limit {total_time}s",
        extra={
            'event_type': 'session_sampled',
            'category': category,
            'pool_size': len(pool),
            'question_count': len(questions),
            'total_time': total_time
        }
    )
    return SessionState(
        category=category,
        questions=questions,
        total_time_seconds=total_time,
        remaining_time_seconds=total_time
    )
