"""
Quiz engine core logic for the Code Quiz session engine.
Handles session setup, the select/submit/feedback cycle, the session countdown
and result compilation for one quiz session at a time.
"""
import logging
import random
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .exceptions import InvalidSelection, InvalidSessionStateError
from .models import (
    UNSET, SKIPPED, AnswerFeedback, Category, PresentedQuestion, Progress,
    QuizSettings, Results, ReviewItem, SessionState, SubmissionPhase, TimeBand
)
from .results import build_review, compile_results
from .sampler import PoolProvider, build_session
from .timers import (
    DeferredTask, SessionTimer, TimerLifecycleLogger, classify_time_band
)


class QuizEvent(Enum):
    """State transitions published to presentation listeners."""
    QUESTION_PRESENTED = "question_presented"
    OPTION_SELECTED = "option_selected"
    ANSWER_SUBMITTED = "answer_submitted"
    TIMER_TICK = "timer_tick"
    TIME_UP = "time_up"
    SESSION_ENDED = "session_ended"


QuizListener = Callable[[QuizEvent, Any], None]

_SELECTABLE_PHASES = (SubmissionPhase.AWAITING_SELECTION, SubmissionPhase.AWAITING_SUBMISSION)


class QuizEngine:
    """
    Drives a single quiz session from setup to results.

    The engine owns one SessionState at a time, together with the session
    countdown and the pending auto-advance. Every scheduled callback is bound
    to the generation that created it; reset() bumps the generation so a
    callback from a superseded session cannot touch the new one.
    """

    def __init__(
        self,
        settings: Optional[QuizSettings] = None,
        session_id: str = "default",
        rng: Optional[random.Random] = None,
        categories: Optional[Dict[str, Category]] = None
    ):
        """
        Initialize the quiz engine.

        Args:
            settings: Quiz configuration, defaults if None
            session_id: Identifier used in logs
            rng: Random source for sampling
            categories: Category catalogue used for display names
        """
        self.logger = logging.getLogger(__name__)
        self.settings = settings or QuizSettings()
        self.session_id = session_id
        self._rng = rng
        self._categories = categories or {}

        self._session: Optional[SessionState] = None
        self._results: Optional[Results] = None
        self._timer: Optional[SessionTimer] = None
        self._pending_advance: Optional[DeferredTask] = None
        self._generation = 0
        self._listeners: List[QuizListener] = []

    # ------------------------------------------------------------------
    # Listeners

    def add_listener(self, listener: QuizListener) -> None:
        """Subscribe to engine events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: QuizListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: QuizEvent, payload: Any = None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                # Log error but don't raise to avoid breaking the timer or the flow
                self.logger.error(
                    f"Listener failed on {event.value} for session {self.session_id}: {e}",
                    exc_info=True,
                    extra={
                        'event_type': 'listener_error',
                        'session_id': self.session_id,
                        'quiz_event': event.value
                    }
                )

    # ------------------------------------------------------------------
    # Lifecycle

    def setup(
        self,
        category: str,
        pool_provider: PoolProvider,
        requested_count: Optional[int] = None
    ) -> SessionState:
        """
        Build a new session for a category, replacing any previous one.

        Args:
            category: Category id
            pool_provider: Callable returning the full question pool
            requested_count: Number of questions, settings.questions_per_quiz if None

        Returns:
            The new, not yet started SessionState

        Raises:
            NoQuestionsAvailable: If the category has no questions
        """
        self.reset()
        if requested_count is None:
            requested_count = self.settings.questions_per_quiz

        self._session = build_session(category, pool_provider, requested_count, self.settings, self._rng)
        self.logger.info(
            f"Session {self.session_id} set up: category='{category}', "
            f"questions={len(self._session.questions)}",
            extra={
                'event_type': 'session_setup',
                'session_id': self.session_id,
                'category': category,
                'question_count': len(self._session.questions),
                'generation': self._generation
            }
        )
        return self._session

    def start(self) -> None:
        """
        Start the session and its countdown.

        Raises:
            InvalidSessionStateError: If there is no session or it was already started
        """
        session = self._require_session("start")
        if session.active or session.phase is SubmissionPhase.ENDED:
            raise InvalidSessionStateError("Session has already been started")

        session.active = True
        session.started_at = time.time()
        session.phase = SubmissionPhase.AWAITING_SELECTION

        generation = self._generation
        self._timer = SessionTimer(self.session_id, self.settings.tick_interval)
        self._timer.start(lambda: self._on_timer_tick(generation))

        self.logger.info(
            f"Session {self.session_id} started with {session.total_time_seconds}s on the clock",
            extra={
                'event_type': 'session_started',
                'session_id': self.session_id,
                'total_time': session.total_time_seconds,
                'generation': generation
            }
        )
        self._emit(QuizEvent.QUESTION_PRESENTED, session.current_question)

    def reset(self) -> None:
        """Cancel all scheduled work and discard the current session."""
        self._cancel_scheduled()
        self._generation += 1
        had_session = self._session is not None
        self._session = None
        self._results = None
        if had_session:
            self.logger.info(
                f"Session {self.session_id} reset",
                extra={
                    'event_type': 'session_reset',
                    'session_id': self.session_id,
                    'generation': self._generation
                }
            )

    def stop_timer(self) -> None:
        """Cancel the session countdown if it is running. Idempotent."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _cancel_pending_advance(self) -> bool:
        if self._pending_advance is None:
            return False
        cancelled = self._pending_advance.cancel()
        self._pending_advance = None
        return cancelled

    def _cancel_scheduled(self) -> None:
        self.stop_timer()
        self._cancel_pending_advance()

    # ------------------------------------------------------------------
    # Timer

    def _on_timer_tick(self, generation: int) -> None:
        if generation != self._generation:
            TimerLifecycleLogger.log_race_condition_detected(
                self.session_id,
                f"Ignoring tick from generation {generation}, current is {self._generation}"
            )
            return
        self.tick()

    def tick(self) -> None:
        """Handle one countdown interrupt: decrement the clock, end the session at zero."""
        session = self._session
        if session is None or not session.active:
            self.logger.debug(f"Tick ignored for inactive session {self.session_id}")
            return

        session.remaining_time_seconds = max(0, session.remaining_time_seconds - 1)
        TimerLifecycleLogger.log_timer_update(
            self.session_id, session.remaining_time_seconds, session.total_time_seconds
        )
        self._emit(QuizEvent.TIMER_TICK, session.remaining_time_seconds)

        if session.remaining_time_seconds <= 0:
            self.handle_time_up()

    def handle_time_up(self) -> Results:
        """
        End the whole quiz because time ran out.

        Any pending auto-advance is cancelled first; the answer it belonged to
        stays recorded. Every unanswered question from the current one onward
        is marked as skipped.
        """
        if self._results is not None:
            return self._results
        session = self._require_active("handle_time_up")

        if self._pending_advance is not None and self._pending_advance.is_pending:
            TimerLifecycleLogger.log_race_condition_detected(
                self.session_id,
                f"Time ran out during feedback for question {session.current_index + 1}; "
                "pending advance cancelled"
            )
        self._cancel_pending_advance()

        skipped = 0
        for i in range(session.current_index, len(session.questions)):
            if session.answers[i] is UNSET:
                session.answers[i] = SKIPPED
                skipped += 1

        self.logger.info(
            f"Time up for session {self.session_id}: {skipped} question(s) skipped",
            extra={
                'event_type': 'session_time_up',
                'session_id': self.session_id,
                'skipped': skipped
            }
        )
        self._emit(QuizEvent.TIME_UP, skipped)
        return self.end_session()

    # ------------------------------------------------------------------
    # Submission flow

    def select_option(self, index: int) -> None:
        """
        Choose an option for the current question without committing it.

        Raises:
            InvalidSessionStateError: If the session is not running or the question was answered
            InvalidSelection: If index is not a valid option position
        """
        session = self._require_active("select_option")
        if session.phase not in _SELECTABLE_PHASES:
            raise InvalidSessionStateError(
                f"Question {session.current_index + 1} has already been answered"
            )

        option_count = len(session.current_question.shuffled_options)
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < option_count:
            raise InvalidSelection(
                f"Option {index!r} is out of range for a question with {option_count} options"
            )

        session.selected_option = index
        session.phase = SubmissionPhase.AWAITING_SUBMISSION
        self._emit(QuizEvent.OPTION_SELECTED, index)

    def submit_answer(self) -> Optional[AnswerFeedback]:
        """
        Commit the selected option for the current question.

        Returns:
            Feedback payload, or None if no option has been selected

        Raises:
            InvalidSessionStateError: If the session is not running or feedback is already showing
        """
        session = self._require_active("submit_answer")
        if session.phase is SubmissionPhase.FEEDBACK:
            raise InvalidSessionStateError(
                f"Question {session.current_index + 1} has already been answered"
            )
        if session.selected_option is UNSET:
            self.logger.debug(
                f"Submit without selection ignored for session {self.session_id}",
                extra={'event_type': 'submit_without_selection', 'session_id': self.session_id}
            )
            return None

        presented = session.current_question
        selected = session.selected_option
        is_correct = selected == presented.relocated_correct_index
        points = self.settings.points_per_correct if is_correct else 0

        session.answers[session.current_index] = selected
        session.score += points
        session.phase = SubmissionPhase.FEEDBACK

        feedback = AnswerFeedback(
            question_index=session.current_index,
            selected_index=selected,
            correct_index=presented.relocated_correct_index,
            is_correct=is_correct,
            points_awarded=points
        )

        generation = self._generation
        self._pending_advance = DeferredTask(self.session_id, self.settings.feedback_delay)
        self._pending_advance.start(lambda: self._on_advance_due(generation))

        self.logger.debug(
            f"Answer recorded for question {session.current_index + 1} in session {self.session_id}: "
            f"{'correct' if is_correct else 'wrong'}",
            extra={
                'event_type': 'answer_submitted',
                'session_id': self.session_id,
                'question_index': session.current_index,
                'is_correct': is_correct,
                'score': session.score
            }
        )
        self._emit(QuizEvent.ANSWER_SUBMITTED, feedback)
        return feedback

    def _on_advance_due(self, generation: int) -> None:
        if generation != self._generation or self._session is None or not self._session.active:
            TimerLifecycleLogger.log_race_condition_detected(
                self.session_id,
                f"Ignoring stale advance from generation {generation}"
            )
            return
        self._pending_advance = None
        self.advance()

    def advance(self) -> None:
        """
        Leave the feedback state: move to the next question or end the session.

        Runs automatically after the feedback delay.

        Raises:
            InvalidSessionStateError: If no answer is showing feedback
        """
        session = self._require_active("advance")
        if session.phase is not SubmissionPhase.FEEDBACK:
            raise InvalidSessionStateError("No submitted answer to advance from")

        self._cancel_pending_advance()
        session.selected_option = UNSET

        if not session.is_last_question:
            session.current_index += 1
            session.phase = SubmissionPhase.AWAITING_SELECTION
            self.logger.debug(
                f"Advanced to question {session.current_index + 1} in session {self.session_id}"
            )
            self._emit(QuizEvent.QUESTION_PRESENTED, session.current_question)
        else:
            self.end_session()

    def end_session(self) -> Results:
        """
        Finish the session and compile its results.

        Calling it again returns the results computed the first time.

        Raises:
            InvalidSessionStateError: If there is no session
        """
        if self._results is not None:
            self.logger.debug(
                f"Session {self.session_id} already ended, returning cached results",
                extra={'event_type': 'session_double_end', 'session_id': self.session_id}
            )
            return self._results

        session = self._require_session("end_session")
        self._cancel_scheduled()

        session.active = False
        session.phase = SubmissionPhase.ENDED
        session.selected_option = UNSET
        session.ended_at = time.time()

        self._results = compile_results(session)
        self.logger.info(
            f"Session {self.session_id} ended: {self._results.correct}/{self._results.total} correct, "
            f"score {self._results.score}, {self._results.time_taken}s",
            extra={
                'event_type': 'session_ended',
                'session_id': self.session_id,
                'category': self._results.category,
                'score': self._results.score,
                'correct': self._results.correct,
                'total': self._results.total,
                'time_taken': self._results.time_taken
            }
        )
        self._emit(QuizEvent.SESSION_ENDED, self._results)
        return self._results

    # ------------------------------------------------------------------
    # Queries

    def get_current_question(self) -> Optional[PresentedQuestion]:
        """Current question, or None if no session is running."""
        if self._session is None or self._session.phase is SubmissionPhase.ENDED:
            return None
        return self._session.current_question

    def get_progress(self) -> Optional[Progress]:
        """Position within the question set, or None if there is no session."""
        session = self._session
        if session is None:
            return None
        current = session.current_index + 1
        total = len(session.questions)
        return Progress(current=current, total=total, percentage_complete=current / total * 100)

    def time_band(self) -> TimeBand:
        """Classify the remaining time using the configured thresholds; NORMAL before setup."""
        if self._session is None:
            return TimeBand.NORMAL
        return classify_time_band(
            self._session.remaining_time_seconds, self.settings.warning_threshold, self.settings.danger_threshold
        )

    def build_review(self) -> List[ReviewItem]:
        """Per-question review of the current session."""
        return build_review(self._require_session("build_review"))

    @property
    def session(self) -> Optional[SessionState]:
        return self._session

    @property
    def results(self) -> Optional[Results]:
        """Results of the ended session, None until it ends."""
        return self._results

    @property
    def phase(self) -> Optional[SubmissionPhase]:
        return self._session.phase if self._session else None

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._session.active

    @property
    def is_ended(self) -> bool:
        return self._results is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_pending_advance(self) -> bool:
        return self._pending_advance is not None and self._pending_advance.is_pending

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and self._timer.is_pending

    @property
    def category_name(self) -> Optional[str]:
        """Display name of the session category, falling back to its id."""
        if self._session is None:
            return None
        category = self._categories.get(self._session.category)
        return category.name if category else self._session.category

    # ------------------------------------------------------------------

    def _require_session(self, operation: str) -> SessionState:
        if self._session is None:
            raise InvalidSessionStateError(f"Cannot {operation}: no quiz session has been set up")
        return self._session

    def _require_active(self, operation: str) -> SessionState:
        session = self._require_session(operation)
        if not session.active:
            raise InvalidSessionStateError(f"Cannot {operation}: the quiz session is not running")
        return session
