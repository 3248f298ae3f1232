"""
Core data models for the Code Quiz session engine.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union


class AnswerMark(Enum):
    """Reserved markers that distinguish a missing answer from option index 0."""
    UNSET = "unset"
    SKIPPED = "skipped"


UNSET = AnswerMark.UNSET
SKIPPED = AnswerMark.SKIPPED

# A recorded answer is either an option index or one of the markers
Answer = Union[int, AnswerMark]


class SubmissionPhase(Enum):
    """Where the current question is in the select/submit/feedback cycle."""
    AWAITING_SELECTION = "awaiting_selection"
    AWAITING_SUBMISSION = "awaiting_submission"
    FEEDBACK = "feedback"
    ENDED = "ended"


class TimeBand(Enum):
    """Classification of remaining session time for presentation."""
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class Category:
    """A question category such as 'python' or 'css'."""
    id: str
    name: str
    icon: str = ""


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice quiz question."""
    id: str
    category: str
    text: str
    options: Tuple[str, ...]
    correct_index: int

    def __post_init__(self):
        # Accept lists from JSON but store an immutable tuple
        object.__setattr__(self, 'options', tuple(self.options))
        if len(self.options) < 2:
            raise ValueError(f"Question {self.id} needs at least 2 options, got {len(self.options)}")
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError(
                f"Question {self.id} correct index {self.correct_index} "
                f"is outside 0..{len(self.options) - 1}"
            )

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_index]


@dataclass(frozen=True)
class PresentedQuestion:
    """A question together with the option order used in one session."""
    question: Question
    shuffled_options: Tuple[str, ...]
    relocated_correct_index: int

    @property
    def text(self) -> str:
        return self.question.text

    @property
    def correct_option(self) -> str:
        return self.shuffled_options[self.relocated_correct_index]


@dataclass
class QuizSettings:
    """Configuration settings for quiz sessions."""
    questions_per_quiz: int = 10
    seconds_per_question: int = 60
    points_per_correct: int = 10
    warning_threshold: int = 120
    danger_threshold: int = 60
    feedback_delay: float = 1.0
    tick_interval: float = 1.0


@dataclass
class SessionState:
    """Mutable state of one quiz attempt, owned by a QuizEngine."""
    category: str
    questions: List[PresentedQuestion]
    total_time_seconds: int
    remaining_time_seconds: int
    current_index: int = 0
    answers: List[Answer] = field(default_factory=list)
    selected_option: Answer = UNSET
    score: int = 0
    active: bool = False
    phase: SubmissionPhase = SubmissionPhase.AWAITING_SELECTION
    started_at: Optional[float] = None
    ended_at: Optional[float] = None

    def __post_init__(self):
        if not self.answers:
            self.answers = [UNSET] * len(self.questions)

    @property
    def current_question(self) -> PresentedQuestion:
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1


@dataclass(frozen=True)
class AnswerFeedback:
    """What presentation needs to show right after a submission."""
    question_index: int
    selected_index: int
    correct_index: int
    is_correct: bool
    points_awarded: int


@dataclass(frozen=True)
class Progress:
    """Position of the session within its question set."""
    current: int
    total: int
    percentage_complete: float


@dataclass(frozen=True)
class Results:
    """Final score summary of a finished session."""
    score: int
    correct: int
    wrong: int
    total: int
    percentage: int
    time_taken: int
    category: str


@dataclass(frozen=True)
class ReviewItem:
    """One line of the post-quiz review."""
    question_text: str
    presented_options: Tuple[str, ...]
    user_answer_text: str
    correct_answer_text: str
    is_correct: bool
    was_skipped: bool


@dataclass(frozen=True)
class LeaderboardEntry:
    """Projection of Results handed to the persistence collaborator."""
    username: str
    category: str
    score: int
    time_taken: int
    correct: int
    total: int


@dataclass(frozen=True)
class ResultTier:
    """Headline shown for a range of percentages."""
    min_percentage: int
    title: str
