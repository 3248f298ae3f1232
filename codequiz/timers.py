"""
Cancellable scheduled tasks that drive quiz sessions.

A session has one repeating SessionTimer (the countdown for the whole quiz)
and at most one DeferredTask (the auto-advance after answer feedback). Both
run on the asyncio event loop and can be cancelled synchronously.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional

from .models import TimeBand

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_created(session_id: str, kind: str, interval: float) -> None:
        """Log creation of a scheduled task."""
        logger.debug(
            f"Timer lifecycle: CREATED - Session {session_id}, Kind {kind}, Interval {interval:.3f}s",
            extra={
                'event_type': 'timer_created',
                'session_id': session_id,
                'kind': kind,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_start(session_id: str, kind: str, task_id: str = None) -> None:
        """Log countdown start."""
        logger.info(
            f"Timer lifecycle: START - Session {session_id}, Kind {kind}",
            extra={
                'event_type': 'timer_start',
                'session_id': session_id,
                'kind': kind,
                'task_id': task_id,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100 if total_duration else 100.0
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time}s ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, kind: str, completion_type: str) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Kind {kind}, Type {completion_type}",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'kind': kind,
                'completion_type': completion_type,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(session_id: str, details: str) -> None:
        """Log race condition detection."""
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - Session {session_id}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'session_id': session_id,
                'details': details,
                'timestamp': time.time()
            }
        )


class ScheduledTask:
    """Base class for a cancellable callback scheduled on the running event loop."""

    kind = "scheduled"

    def __init__(self, session_id: str, interval: float):
        """
        Initialize the task.

        Args:
            session_id: Identifier used in lifecycle logs
            interval: Delay in seconds before the callback runs
        """
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False
        self._session_id = session_id
        self._interval = interval
        TimerLifecycleLogger.log_timer_created(session_id, self.kind, interval)

    def start(self, callback: Callable[[], Any]) -> asyncio.Task:
        """
        Schedule the callback on the running event loop.

        Raises:
            RuntimeError: If the task was already started or there is no running loop
        """
        if self._task is not None:
            raise RuntimeError(f"{self.kind} task for session {self._session_id} already started")
        self._task = asyncio.get_running_loop().create_task(self._run(callback))
        TimerLifecycleLogger.log_timer_start(self._session_id, self.kind, str(id(self._task)))
        return self._task

    async def _run(self, callback: Callable[[], Any]) -> None:
        raise NotImplementedError

    def _invoke(self, callback: Callable[[], Any]) -> None:
        """Run the callback; a failure is logged and the schedule carries on."""
        try:
            callback()
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "callback_error",
                str(e),
                f"{self.kind}_callback"
            )

    def cancel(self) -> bool:
        """
        Cancel the task. Safe to call any number of times.

        Returns:
            True if a pending task was cancelled, False if there was nothing to cancel
        """
        if self._is_cancelled:
            return False
        self._is_cancelled = True

        if self._task is None or self._task.done():
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id, "idle", "cancelled", f"no active {self.kind} task"
            )
            return False

        # A task cancelling itself from inside its callback just stops at the flag check
        if self._task is not _current_task():
            self._task.cancel()
        TimerLifecycleLogger.log_timer_state_transition(
            self._session_id, "running", "cancelled", f"{self.kind} task cancelled"
        )
        return True

    @property
    def is_cancelled(self) -> bool:
        return self._is_cancelled

    @property
    def is_pending(self) -> bool:
        """True while the task is scheduled and has neither finished nor been cancelled."""
        return self._task is not None and not self._task.done() and not self._is_cancelled


class SessionTimer(ScheduledTask):
    """Repeating interrupt that ticks once per interval until cancelled."""

    kind = "session_timer"

    def __init__(self, session_id: str, interval: float = 1.0):
        super().__init__(session_id, interval)
        self._tick_count = 0

    async def _run(self, callback: Callable[[], Any]) -> None:
        try:
            while not self._is_cancelled:
                await asyncio.sleep(self._interval)
                if self._is_cancelled:
                    break
                self._tick_count += 1
                self._invoke(callback)
            TimerLifecycleLogger.log_timer_completion(self._session_id, self.kind, "stopped")
        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._session_id, self.kind, "asyncio_cancelled")
            raise

    @property
    def tick_count(self) -> int:
        """Number of ticks delivered so far."""
        return self._tick_count


class DeferredTask(ScheduledTask):
    """One-shot callback that runs once after a fixed delay unless cancelled."""

    kind = "deferred"

    def __init__(self, session_id: str, delay: float):
        super().__init__(session_id, delay)
        self._fired = False

    async def _run(self, callback: Callable[[], Any]) -> None:
        try:
            await asyncio.sleep(self._interval)
            if self._is_cancelled:
                return
            self._fired = True
            self._invoke(callback)
            TimerLifecycleLogger.log_timer_completion(self._session_id, self.kind, "fired")
        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(self._session_id, self.kind, "asyncio_cancelled")
            raise

    @property
    def has_fired(self) -> bool:
        return self._fired


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def classify_time_band(remaining_seconds: int, warning_threshold: int = 120, danger_threshold: int = 60) -> TimeBand:
    """
    Classify remaining time for presentation.

    Args:
        remaining_seconds: Seconds left in the session
        warning_threshold: At or below this the band is WARNING
        danger_threshold: At or below this the band is DANGER

    Returns:
        TimeBand for the remaining time
    """
    if remaining_seconds <= danger_threshold:
        return TimeBand.DANGER
    if remaining_seconds <= warning_threshold:
        return TimeBand.WARNING
    return TimeBand.NORMAL


def format_clock(seconds: int) -> str:
    """Format seconds as m:ss."""
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"
