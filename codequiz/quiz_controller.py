"""
Quiz session controller for the Code Quiz bot.
Hosts one QuizEngine per Discord channel, forwards finished results to the
persistence collaborator and turns engine errors into user-facing messages.
"""
import logging
import random
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager
from .exceptions import (
    InvalidSelection, InvalidSessionStateError, NoQuestionsAvailable,
    QuizEngineError, SubmitWithoutSelection
)
from .models import LeaderboardEntry, Results, ReviewItem
from .quiz_engine import QuizEngine, QuizEvent, QuizListener
from .results import leaderboard_entry
from .timers import format_clock

ResultsSink = Callable[[str, Results, LeaderboardEntry], None]


class SessionStatus(Enum):
    """Enumeration of possible channel session states."""
    INACTIVE = "inactive"
    ACTIVE = "active"
    COMPLETED = "completed"


class QuizControllerError(QuizEngineError):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when attempting to start a quiz where one is already running."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


class QuizController:
    """
    Orchestrates quiz sessions across Discord channels.

    Each channel gets its own QuizEngine; a channel can run at most one quiz
    at a time. The acting identity recorded at start decides whether results
    are forwarded to the results sink when the quiz ends.
    """

    def __init__(
        self,
        data_manager: DataManager,
        config_manager: ConfigManager,
        results_sink: Optional[ResultsSink] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            data_manager: Question pool provider
            config_manager: Source of quiz settings
            results_sink: Called with (username, results, leaderboard entry) for identified players
            rng: Random source shared by all engines
        """
        self.logger = logging.getLogger(__name__)
        self.data_manager = data_manager
        self.config_manager = config_manager
        self.results_sink = results_sink
        self._rng = rng

        self._engines: Dict[int, QuizEngine] = {}
        self._players: Dict[int, Optional[str]] = {}
        self._presenters: Dict[int, Optional[QuizListener]] = {}

        self.logger.info("QuizController initialized")

    # ------------------------------------------------------------------
    # Session lifecycle

    def _get_or_create_engine(self, channel_id: int) -> QuizEngine:
        engine = self._engines.get(channel_id)
        if engine is None:
            engine = QuizEngine(
                settings=self.config_manager.get_quiz_settings(),
                session_id=str(channel_id),
                rng=self._rng,
                categories=self.data_manager.categories
            )
            engine.add_listener(lambda event, payload: self._on_engine_event(channel_id, event, payload))
            self._engines[channel_id] = engine
        else:
            engine.settings = self.config_manager.get_quiz_settings()
        return engine

    def start_quiz(
        self,
        channel_id: int,
        category: str,
        username: Optional[str] = None,
        presenter: Optional[QuizListener] = None
    ) -> Dict[str, Any]:
        """
        Set up and start a quiz in a channel.

        Args:
            channel_id: Discord channel identifier
            category: Category id to draw questions from
            username: Acting identity, None for guests
            presenter: Listener that renders engine events for this channel

        Returns:
            Dictionary with operation results and error information
        """
        try:
            if self.has_active_session(channel_id):
                raise SessionConflictError(f"Quiz already running in channel {channel_id}")

            engine = self._get_or_create_engine(channel_id)
            self._detach_presenter(channel_id)

            engine.setup(category, self.data_manager.get_all_questions)
            self._players[channel_id] = username
            if presenter is not None:
                engine.add_listener(presenter)
                self._presenters[channel_id] = presenter
            engine.start()

            self.logger.info(
                f"Started quiz in channel {channel_id}: category='{category}', player={username or 'guest'}",
                extra={
                    'event_type': 'quiz_started',
                    'channel_id': channel_id,
                    'category': category,
                    'player': username,
                    'timestamp': time.time()
                }
            )
            return {
                'success': True,
                'message': f"Quiz '{category}' started successfully",
                'session_info': self.get_session_progress(channel_id)
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "start_quiz")

    def retry_quiz(
        self,
        channel_id: int,
        username: Optional[str] = None,
        presenter: Optional[QuizListener] = None
    ) -> Dict[str, Any]:
        """
        Start a new quiz in the same category as the last one in this channel.

        The new session belongs to whoever asked for the retry; a None username
        plays it as a guest.
        """
        engine = self._engines.get(channel_id)
        if engine is None or engine.session is None:
            return self._handle_session_error(
                channel_id, SessionNotFoundError(f"No previous quiz in channel {channel_id}"), "retry_quiz"
            )
        return self.start_quiz(
            channel_id,
            engine.session.category,
            username,
            presenter or self._presenters.get(channel_id)
        )

    def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Abandon the quiz in a channel without recording results.

        Returns:
            Dictionary with operation results and error information
        """
        try:
            engine = self._engines.get(channel_id)
            if engine is None or engine.session is None:
                raise SessionNotFoundError(f"No quiz session in channel {channel_id}")

            session_info = self.get_session_progress(channel_id)
            was_active = engine.is_active
            self._detach_presenter(channel_id)
            engine.reset()
            del self._engines[channel_id]
            self._players.pop(channel_id, None)

            self.logger.info(
                f"Stopped quiz in channel {channel_id} (was active: {was_active})",
                extra={
                    'event_type': 'quiz_stopped',
                    'channel_id': channel_id,
                    'was_active': was_active,
                    'timestamp': time.time()
                }
            )
            return {
                'success': True,
                'message': "Quiz stopped",
                'session_info': session_info
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "stop_quiz")

    def _detach_presenter(self, channel_id: int) -> None:
        presenter = self._presenters.pop(channel_id, None)
        engine = self._engines.get(channel_id)
        if presenter is not None and engine is not None:
            engine.remove_listener(presenter)

    # ------------------------------------------------------------------
    # Submission flow

    def select_option(self, channel_id: int, index: int) -> Dict[str, Any]:
        """
        Select an option (0-based) for the current question in a channel.

        Returns:
            Dictionary with operation results and error information
        """
        try:
            engine = self._require_engine(channel_id)
            engine.select_option(index)
            question = engine.get_current_question()
            return {
                'success': True,
                'message': f"Selected option {index + 1}",
                'selected_index': index,
                'selected_text': question.shuffled_options[index]
            }
        except Exception as e:
            return self._handle_session_error(channel_id, e, "select_option")

    def submit_answer(self, channel_id: int) -> Dict[str, Any]:
        """
        Submit the selected option for the current question in a channel.

        Returns:
            Dictionary with the feedback payload or error information
        """
        try:
            engine = self._require_engine(channel_id)
            feedback = engine.submit_answer()
            if feedback is None:
                raise SubmitWithoutSelection("No option selected before submitting")
            return {
                'success': True,
                'message': "Answer submitted",
                'feedback': feedback
            }
        except Exception as e:
            return self._handle_session_error(channel_id, e, "submit_answer")

    def _on_engine_event(self, channel_id: int, event: QuizEvent, payload: Any) -> None:
        if event is not QuizEvent.SESSION_ENDED:
            return
        username = self._players.get(channel_id)
        if username is None or self.results_sink is None:
            self.logger.debug(f"Results for channel {channel_id} not forwarded (guest or no sink)")
            return
        self.results_sink(username, payload, leaderboard_entry(payload, username))
        self.logger.info(
            f"Forwarded results for {username} in channel {channel_id}",
            extra={
                'event_type': 'results_forwarded',
                'channel_id': channel_id,
                'player': username,
                'score': payload.score
            }
        )

    # ------------------------------------------------------------------
    # Queries

    def get_engine(self, channel_id: int) -> Optional[QuizEngine]:
        return self._engines.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        engine = self._engines.get(channel_id)
        return engine is not None and engine.is_active

    def get_session_state(self, channel_id: int) -> SessionStatus:
        engine = self._engines.get(channel_id)
        if engine is None or engine.session is None:
            return SessionStatus.INACTIVE
        if engine.is_ended:
            return SessionStatus.COMPLETED
        return SessionStatus.ACTIVE

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a channel's session.

        Returns:
            Dictionary with progress info, None if there is no session
        """
        engine = self._engines.get(channel_id)
        if engine is None or engine.session is None:
            return None

        session = engine.session
        progress = engine.get_progress()
        return {
            'category': session.category,
            'category_name': engine.category_name,
            'current_question': progress.current,
            'total_questions': progress.total,
            'percentage_complete': progress.percentage_complete,
            'score': session.score,
            'remaining_time': session.remaining_time_seconds,
            'total_time': session.total_time_seconds,
            'time_band': engine.time_band().value,
            'phase': session.phase.value,
            'is_active': session.active,
            'player': self._players.get(channel_id)
        }

    def get_results(self, channel_id: int) -> Optional[Results]:
        engine = self._engines.get(channel_id)
        return engine.results if engine else None

    def get_review(self, channel_id: int) -> Optional[List[ReviewItem]]:
        """Review of the finished quiz in a channel, None if no quiz has finished."""
        engine = self._engines.get(channel_id)
        if engine is None or not engine.is_ended:
            return None
        return engine.build_review()

    def get_session_status_summary(self, channel_id: int) -> str:
        """One-line description of the channel's session for status displays."""
        progress = self.get_session_progress(channel_id)
        if progress is None:
            return "No quiz in this channel. Start one with `/start`."

        if not progress['is_active']:
            results = self.get_results(channel_id)
            if results is not None:
                return (
                    f"Quiz: {progress['category_name']} | Status: Finished | "
                    f"Score: {results.score} ({results.correct}/{results.total})"
                )
            return f"Quiz: {progress['category_name']} | Status: Ready"

        return (
            f"Quiz: {progress['category_name']} | Status: Active | "
            f"Question {progress['current_question']}/{progress['total_questions']} | "
            f"Score: {progress['score']} | Time left: {format_clock(progress['remaining_time'])}"
        )

    def get_all_active_sessions(self) -> Dict[int, Dict[str, Any]]:
        return {
            channel_id: self.get_session_progress(channel_id)
            for channel_id, engine in self._engines.items()
            if engine.is_active
        }

    def cleanup_finished_sessions(self) -> int:
        """
        Drop engines whose quiz has finished.

        Returns:
            Number of sessions cleaned up
        """
        finished = [channel_id for channel_id, engine in self._engines.items() if engine.is_ended]
        for channel_id in finished:
            self._detach_presenter(channel_id)
            self._engines.pop(channel_id).reset()
            self._players.pop(channel_id, None)

        if finished:
            self.logger.info(f"Cleaned up {len(finished)} finished sessions")
        return len(finished)

    def _require_engine(self, channel_id: int) -> QuizEngine:
        engine = self._engines.get(channel_id)
        if engine is None or engine.session is None:
            raise SessionNotFoundError(f"No quiz session in channel {channel_id}")
        return engine

    # ------------------------------------------------------------------
    # Errors

    def _handle_session_error(self, channel_id: int, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log an error and build the failure result returned to callers.

        Expected user mistakes are logged at INFO, anything else at ERROR with a traceback.
        """
        if isinstance(error, QuizEngineError):
            self.logger.info(f"{operation} rejected for channel {channel_id}: {error}")
        else:
            self.logger.error(f"Error in {operation} for channel {channel_id}: {error}", exc_info=True)

        return {
            'success': False,
            'error': str(error),
            'error_type': type(error).__name__,
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        """
        Generate user-friendly error messages.

        Args:
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            User-friendly error message
        """
        if isinstance(error, NoQuestionsAvailable):
            return "❌ No questions available for this selection. Pick another category with `/categories`."

        elif isinstance(error, SessionConflictError):
            return "❌ A quiz is already running in this channel. Finish it or stop it with `/stop`."

        elif isinstance(error, SessionNotFoundError):
            return "❌ No quiz found in this channel. Start one with `/start`."

        elif isinstance(error, InvalidSelection):
            return "❌ That option doesn't exist for this question."

        elif isinstance(error, SubmitWithoutSelection):
            return "❌ Select an option with `/select` before submitting."

        elif isinstance(error, InvalidSessionStateError):
            return "❌ You can't do that right now. Wait for the next question or start a new quiz."

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."
