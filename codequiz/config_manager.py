"""
Configuration manager for quiz session settings and parameters.
"""
import logging
from typing import Any, Dict, List, Optional
from pathlib import Path
import os

from .models import QuizSettings


class ConfigManager:
    """Manages quiz configuration settings and validates changes to them."""

    # Default configuration values
    DEFAULT_QUESTIONS_PER_QUIZ = 10
    DEFAULT_SECONDS_PER_QUESTION = 60
    DEFAULT_POINTS_PER_CORRECT = 10
    DEFAULT_WARNING_THRESHOLD = 120
    DEFAULT_DANGER_THRESHOLD = 60
    DEFAULT_FEEDBACK_DELAY = 1.0
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"

    # Validation limits
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 100
    MIN_SECONDS_PER_QUESTION = 5
    MAX_SECONDS_PER_QUESTION = 600  # 10 minutes
    MIN_POINTS_PER_CORRECT = 1
    MAX_POINTS_PER_CORRECT = 1000
    MAX_FEEDBACK_DELAY = 10.0

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get a copy of the current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            questions_per_quiz=self._global_settings.questions_per_quiz,
            seconds_per_question=self._global_settings.seconds_per_question,
            points_per_correct=self._global_settings.points_per_correct,
            warning_threshold=self._global_settings.warning_threshold,
            danger_threshold=self._global_settings.danger_threshold,
            feedback_delay=self._global_settings.feedback_delay,
            tick_interval=self._global_settings.tick_interval
        )

    def _set_int(self, field_name: str, label: str, value: Any, minimum: int, maximum: int, unit: str = "") -> Dict[str, Any]:
        suffix = f" {unit}" if unit else ""
        if isinstance(value, bool) or not isinstance(value, int):
            error_msg = f"{label} must be an integer, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }

        if value < minimum:
            error_msg = f"{label} must be at least {minimum}{suffix}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} too small: Minimum is {minimum}{suffix}"
            }

        if value > maximum:
            error_msg = f"{label} cannot exceed {maximum}{suffix}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} too large: Maximum is {maximum}{suffix}"
            }

        setattr(self._global_settings, field_name, value)
        self.logger.info(f"{label} set to {value}{suffix}")
        return {
            'success': True,
            'message': f"{label} set to {value}{suffix}",
            'user_message': f"✅ {label} set to {value}{suffix}"
        }

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set the number of questions drawn for each quiz.

        Args:
            count: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_int(
            'questions_per_quiz', "Question count", count,
            self.MIN_QUESTION_COUNT, self.MAX_QUESTION_COUNT
        )

    def get_question_count(self) -> int:
        return self._global_settings.questions_per_quiz

    def set_seconds_per_question(self, seconds: int) -> Dict[str, Any]:
        """
        Set the time budget per question; the session clock is this times the question count.

        Args:
            seconds: Seconds per question

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_int(
            'seconds_per_question', "Time per question", seconds,
            self.MIN_SECONDS_PER_QUESTION, self.MAX_SECONDS_PER_QUESTION, "seconds"
        )

    def get_seconds_per_question(self) -> int:
        return self._global_settings.seconds_per_question

    def set_points_per_correct(self, points: int) -> Dict[str, Any]:
        """Set the points awarded for each correct answer."""
        return self._set_int(
            'points_per_correct', "Points per correct answer", points,
            self.MIN_POINTS_PER_CORRECT, self.MAX_POINTS_PER_CORRECT
        )

    def set_time_thresholds(self, warning: int, danger: int) -> Dict[str, Any]:
        """
        Set the warning and danger time bands.

        Args:
            warning: Remaining seconds at or below which the clock shows a warning
            danger: Remaining seconds at or below which the clock shows danger

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        for label, value in (("Warning threshold", warning), ("Danger threshold", danger)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                error_msg = f"{label} must be a non-negative integer, got {value!r}"
                self.logger.error(error_msg)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': f"❌ Invalid input: {label} must be a whole number of seconds"
                }

        if danger >= warning:
            error_msg = f"Danger threshold ({danger}s) must be below warning threshold ({warning}s)"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ The danger threshold must be lower than the warning threshold"
            }

        self._global_settings.warning_threshold = warning
        self._global_settings.danger_threshold = danger
        self.logger.info(f"Time thresholds set to warning={warning}s, danger={danger}s")
        return {
            'success': True,
            'message': f"Time thresholds set to warning={warning}s, danger={danger}s",
            'user_message': f"✅ Warning at {warning}s, danger at {danger}s"
        }

    def set_feedback_delay(self, delay: float) -> Dict[str, Any]:
        """Set how long answer feedback stays up before the next question."""
        if isinstance(delay, bool) or not isinstance(delay, (int, float)):
            error_msg = f"Feedback delay must be a number, got {type(delay).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(delay).__name__}"
            }

        if delay < 0 or delay > self.MAX_FEEDBACK_DELAY:
            error_msg = f"Feedback delay must be between 0 and {self.MAX_FEEDBACK_DELAY} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Feedback delay must be between 0 and {self.MAX_FEEDBACK_DELAY:g} seconds"
            }

        self._global_settings.feedback_delay = float(delay)
        self.logger.info(f"Feedback delay set to {delay} seconds")
        return {
            'success': True,
            'message': f"Feedback delay set to {delay} seconds",
            'user_message': f"✅ Feedback shown for {delay:g} seconds"
        }

    def set_quiz_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory quiz files are loaded from.

        Args:
            directory: Path to the quiz directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(directory, str) or not directory.strip():
            error_msg = "Quiz directory must be a non-empty string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Invalid quiz directory path"
            }

        path = Path(directory)
        if path.exists() and not path.is_dir():
            error_msg = f"Quiz directory path is not a directory: {directory}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {directory} is a file, not a directory"
            }

        self._quiz_directory = directory
        self.logger.info(f"Quiz directory set to {directory}")
        return {
            'success': True,
            'message': f"Quiz directory set to {directory}",
            'user_message': f"✅ Quiz directory set to {directory}"
        }

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' section of a loaded config.json.

        Invalid values are logged and skipped so the defaults stay in place.

        Args:
            config: Parsed configuration dictionary

        Returns:
            List of user-facing messages for values that were rejected
        """
        quiz_config = (config or {}).get('quiz', {})
        results = []

        if 'quiz_directory' in quiz_config:
            results.append(self.set_quiz_directory(quiz_config['quiz_directory']))
        if 'questions_per_quiz' in quiz_config:
            results.append(self.set_question_count(quiz_config['questions_per_quiz']))
        if 'seconds_per_question' in quiz_config:
            results.append(self.set_seconds_per_question(quiz_config['seconds_per_question']))
        if 'points_per_correct' in quiz_config:
            results.append(self.set_points_per_correct(quiz_config['points_per_correct']))
        if 'warning_threshold' in quiz_config or 'danger_threshold' in quiz_config:
            results.append(self.set_time_thresholds(
                quiz_config.get('warning_threshold', self._global_settings.warning_threshold),
                quiz_config.get('danger_threshold', self._global_settings.danger_threshold)
            ))
        if 'feedback_delay' in quiz_config:
            results.append(self.set_feedback_delay(quiz_config['feedback_delay']))

        rejected = [r['user_message'] for r in results if not r['success']]
        if rejected:
            self.logger.warning(f"Ignored {len(rejected)} invalid quiz configuration value(s)")
        return rejected

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(
            questions_per_quiz=self.DEFAULT_QUESTIONS_PER_QUIZ,
            seconds_per_question=self.DEFAULT_SECONDS_PER_QUESTION,
            points_per_correct=self.DEFAULT_POINTS_PER_CORRECT,
            warning_threshold=self.DEFAULT_WARNING_THRESHOLD,
            danger_threshold=self.DEFAULT_DANGER_THRESHOLD,
            feedback_delay=self.DEFAULT_FEEDBACK_DELAY
        )
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._global_settings

        if not self.MIN_QUESTION_COUNT <= settings.questions_per_quiz <= self.MAX_QUESTION_COUNT:
            validation_result["issues"].append(f"Invalid question count: {settings.questions_per_quiz}")

        if not self.MIN_SECONDS_PER_QUESTION <= settings.seconds_per_question <= self.MAX_SECONDS_PER_QUESTION:
            validation_result["issues"].append(f"Invalid time per question: {settings.seconds_per_question}")

        if settings.points_per_correct < self.MIN_POINTS_PER_CORRECT:
            validation_result["issues"].append(f"Invalid points per correct answer: {settings.points_per_correct}")

        if settings.danger_threshold >= settings.warning_threshold:
            validation_result["issues"].append(
                f"Invalid time thresholds: danger {settings.danger_threshold}s "
                f"is not below warning {settings.warning_threshold}s"
            )

        if not 0 <= settings.feedback_delay <= self.MAX_FEEDBACK_DELAY:
            validation_result["issues"].append(f"Invalid feedback delay: {settings.feedback_delay}")

        if not os.path.isdir(self._quiz_directory) and os.path.exists(self._quiz_directory):
            validation_result["issues"].append(f"Invalid quiz directory: {self._quiz_directory}")

        validation_result["valid"] = not validation_result["issues"]
        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        return (
            f"Quiz Settings:\n"
            f"• Questions: {settings.questions_per_quiz}\n"
            f"• Time: {settings.seconds_per_question} seconds per question\n"
            f"• Points: {settings.points_per_correct} per correct answer\n"
            f"• Clock warning/danger: {settings.warning_threshold}s / {settings.danger_threshold}s\n"
            f"• Quiz Directory: {self._quiz_directory}"
        )
