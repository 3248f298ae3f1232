"""
Exceptions raised by the quiz session engine.
"""


class QuizEngineError(Exception):
    """Base exception for quiz engine errors."""
    pass


class NoQuestionsAvailable(QuizEngineError):
    """Raised when a category has no questions to build a session from."""

    def __init__(self, category: str):
        super().__init__(f"No questions available for category: {category}")
        self.category = category


class InvalidSelection(QuizEngineError, ValueError):
    """Raised when an option index is outside the current question's options."""
    pass


class SubmitWithoutSelection(QuizEngineError):
    """Reported when an answer is submitted before any option was selected."""
    pass


class InvalidSessionStateError(QuizEngineError):
    """Raised when the session is in an invalid state for the requested operation."""
    pass
