"""
Unit tests for QuizEngine: setup, the select/submit/feedback cycle, the
session countdown and result compilation.
"""
import asyncio
import random
import unittest
from unittest.mock import Mock

from codequiz.exceptions import InvalidSelection, InvalidSessionStateError, NoQuestionsAvailable
from codequiz.models import Category, SKIPPED, SubmissionPhase, TimeBand, UNSET
from codequiz.quiz_engine import QuizEngine, QuizEvent
from tests.test_fixtures import AsyncTestHelpers, ScriptedRandom, TestFixtures


class EngineTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared setup: manual ticks, near-instant feedback."""

    def setUp(self):
        self.pool = TestFixtures.create_sample_pool()
        self.settings = TestFixtures.create_sample_quiz_settings()
        self.engine = QuizEngine(settings=self.settings, session_id="test", rng=random.Random(42))
        self.events = []
        self.engine.add_listener(lambda event, payload: self.events.append((event, payload)))

    async def asyncTearDown(self):
        self.engine.reset()

    def start(self, category="python", count=None):
        self.engine.setup(category, lambda: self.pool, count)
        self.engine.start()
        return self.engine.session

    def answer_current(self, correct=True):
        presented = self.engine.get_current_question()
        index = presented.relocated_correct_index
        if not correct:
            index = (index + 1) % len(presented.shuffled_options)
        self.engine.select_option(index)
        return self.engine.submit_answer()

    async def wait_for_advance(self):
        ok = await AsyncTestHelpers.wait_until(lambda: not self.engine.has_pending_advance)
        self.assertTrue(ok, "pending advance never fired")

    def event_types(self):
        return [event for event, _ in self.events]


class TestQuizEngineSetup(EngineTestCase):
    """Test session setup and start."""

    async def test_setup_builds_inactive_session(self):
        session = self.engine.setup("css", lambda: self.pool)

        self.assertEqual(len(session.questions), 3)
        self.assertEqual(session.total_time_seconds, 180)
        self.assertFalse(session.active)
        self.assertFalse(self.engine.timer_running)
        self.assertEqual(self.events, [])

    async def test_setup_unknown_category_leaves_no_session(self):
        with self.assertRaises(NoQuestionsAvailable):
            self.engine.setup("cobol", lambda: self.pool)
        self.assertIsNone(self.engine.session)

    async def test_setup_respects_requested_count(self):
        session = self.engine.setup("python", lambda: self.pool, 2)
        self.assertEqual(len(session.questions), 2)
        self.assertEqual(session.total_time_seconds, 120)

    async def test_start_activates_session_and_timer(self):
        session = self.start()

        self.assertTrue(session.active)
        self.assertIsNotNone(session.started_at)
        self.assertTrue(self.engine.timer_running)
        self.assertEqual(self.event_types(), [QuizEvent.QUESTION_PRESENTED])
        self.assertIs(self.events[0][1], session.questions[0])

    async def test_start_without_setup_raises(self):
        with self.assertRaises(InvalidSessionStateError):
            self.engine.start()

    async def test_start_twice_raises(self):
        self.start()
        with self.assertRaises(InvalidSessionStateError):
            self.engine.start()

    async def test_setup_replaces_running_session(self):
        self.start()
        old_generation = self.engine.generation

        self.engine.setup("html", lambda: self.pool)

        self.assertGreater(self.engine.generation, old_generation)
        self.assertFalse(self.engine.timer_running)
        self.assertEqual(self.engine.session.category, "html")
        self.assertFalse(self.engine.session.active)


class TestSubmissionFlow(EngineTestCase):
    """Test selecting, submitting and advancing."""

    async def test_single_question_correct_answer(self):
        question = TestFixtures.create_question(correct_index=2)
        engine = QuizEngine(settings=self.settings, rng=ScriptedRandom([3, 0, 1]))
        engine.setup("python", lambda: [question])
        engine.start()
        self.assertEqual(engine.get_current_question().relocated_correct_index, 0)

        engine.select_option(0)
        feedback = engine.submit_answer()

        self.assertTrue(feedback.is_correct)
        self.assertEqual(feedback.points_awarded, 10)
        self.assertEqual(engine.session.score, 10)
        self.assertEqual(engine.session.answers[0], 0)

        ok = await AsyncTestHelpers.wait_until(lambda: engine.is_ended)
        self.assertTrue(ok)
        self.assertEqual(engine.results.correct, 1)
        self.assertEqual(engine.results.percentage, 100)

    async def test_select_records_choice_without_committing(self):
        session = self.start()

        self.engine.select_option(1)

        self.assertEqual(session.selected_option, 1)
        self.assertIs(session.answers[0], UNSET)
        self.assertIs(session.phase, SubmissionPhase.AWAITING_SUBMISSION)
        self.assertEqual(self.events[-1], (QuizEvent.OPTION_SELECTED, 1))

    async def test_reselect_before_submit(self):
        session = self.start()
        self.engine.select_option(1)
        self.engine.select_option(3)
        self.assertEqual(session.selected_option, 3)

    async def test_wrong_answer_scores_nothing(self):
        session = self.start()
        feedback = self.answer_current(correct=False)

        self.assertFalse(feedback.is_correct)
        self.assertEqual(feedback.points_awarded, 0)
        self.assertEqual(session.score, 0)
        self.assertEqual(session.answers[0], feedback.selected_index)

    async def test_submit_enters_feedback_then_advances(self):
        session = self.start()
        self.answer_current()

        self.assertIs(session.phase, SubmissionPhase.FEEDBACK)
        self.assertTrue(self.engine.has_pending_advance)

        await self.wait_for_advance()

        self.assertEqual(session.current_index, 1)
        self.assertIs(session.phase, SubmissionPhase.AWAITING_SELECTION)
        self.assertIs(session.selected_option, UNSET)
        self.assertEqual(self.event_types().count(QuizEvent.QUESTION_PRESENTED), 2)

    async def test_full_quiz_scores_and_ends(self):
        session = self.start(count=3)

        for correct in (True, False, True):
            self.answer_current(correct)
            await self.wait_for_advance()

        self.assertTrue(self.engine.is_ended)
        self.assertFalse(session.active)
        self.assertIs(session.phase, SubmissionPhase.ENDED)
        self.assertFalse(self.engine.timer_running)

        results = self.engine.results
        self.assertEqual(results.score, 20)
        self.assertEqual(results.correct, 2)
        self.assertEqual(results.wrong, 1)
        self.assertEqual(results.total, 3)
        self.assertEqual(results.percentage, 67)
        self.assertEqual(results.category, "python")
        self.assertEqual(self.event_types()[-1], QuizEvent.SESSION_ENDED)

    async def test_scoring_law(self):
        settings = TestFixtures.create_sample_quiz_settings(points_per_correct=25)
        engine = QuizEngine(settings=settings, rng=random.Random(3))
        engine.setup("python", lambda: self.pool, 4)
        engine.start()

        for correct in (True, True, False, True):
            presented = engine.get_current_question()
            index = presented.relocated_correct_index if correct else (presented.relocated_correct_index + 1) % 4
            engine.select_option(index)
            engine.submit_answer()
            engine.advance()

        self.assertEqual(engine.results.score, engine.results.correct * 25)
        self.assertEqual(engine.results.correct, 3)

    async def test_manual_advance_cancels_pending_advance(self):
        session = self.start()
        self.answer_current()

        self.engine.advance()

        self.assertFalse(self.engine.has_pending_advance)
        self.assertEqual(session.current_index, 1)
        await asyncio.sleep(0.05)
        self.assertEqual(session.current_index, 1)


class TestRejectedOperations(EngineTestCase):
    """Rejected operations leave the session unchanged."""

    def snapshot(self):
        s = self.engine.session
        return (s.current_index, list(s.answers), s.selected_option, s.score, s.phase, s.active)

    async def test_select_out_of_range(self):
        self.start()
        before = self.snapshot()

        with self.assertRaises(InvalidSelection):
            self.engine.select_option(5)
        with self.assertRaises(InvalidSelection):
            self.engine.select_option(-1)

        self.assertEqual(self.snapshot(), before)

    async def test_select_non_integer(self):
        self.start()
        before = self.snapshot()

        for bad in (True, 1.0, "1", None):
            with self.assertRaises(InvalidSelection):
                self.engine.select_option(bad)

        self.assertEqual(self.snapshot(), before)

    async def test_invalid_selection_is_value_error(self):
        self.start()
        with self.assertRaises(ValueError):
            self.engine.select_option(99)

    async def test_submit_without_selection_returns_none(self):
        self.start()
        before = self.snapshot()

        self.assertIsNone(self.engine.submit_answer())
        self.assertEqual(self.snapshot(), before)
        self.assertFalse(self.engine.has_pending_advance)

    async def test_select_and_submit_during_feedback(self):
        self.start()
        self.answer_current()
        before = self.snapshot()

        with self.assertRaises(InvalidSessionStateError):
            self.engine.select_option(0)
        with self.assertRaises(InvalidSessionStateError):
            self.engine.submit_answer()

        self.assertEqual(self.snapshot(), before)

    async def test_operations_before_start(self):
        self.engine.setup("python", lambda: self.pool)

        with self.assertRaises(InvalidSessionStateError):
            self.engine.select_option(0)
        with self.assertRaises(InvalidSessionStateError):
            self.engine.submit_answer()
        with self.assertRaises(InvalidSessionStateError):
            self.engine.advance()

    async def test_operations_after_end(self):
        self.start()
        self.engine.end_session()

        with self.assertRaises(InvalidSessionStateError):
            self.engine.select_option(0)
        with self.assertRaises(InvalidSessionStateError):
            self.engine.submit_answer()

    async def test_advance_without_feedback(self):
        self.start()
        with self.assertRaises(InvalidSessionStateError):
            self.engine.advance()


class TestSessionClock(EngineTestCase):
    """Test the countdown and time-up handling."""

    async def test_tick_decrements_clock(self):
        session = self.start()
        self.engine.tick()
        self.engine.tick()

        self.assertEqual(session.remaining_time_seconds, session.total_time_seconds - 2)
        self.assertEqual(self.events[-1], (QuizEvent.TIMER_TICK, session.total_time_seconds - 2))

    async def test_tick_ignored_when_inactive(self):
        session = self.engine.setup("python", lambda: self.pool)
        self.engine.tick()
        self.assertEqual(session.remaining_time_seconds, session.total_time_seconds)

    async def test_time_up_after_first_answer(self):
        settings = TestFixtures.create_sample_quiz_settings(seconds_per_question=1)
        engine = QuizEngine(settings=settings, rng=random.Random(8))
        engine.setup("html", lambda: self.pool)
        engine.start()

        first = engine.get_current_question()
        engine.select_option(first.relocated_correct_index)
        engine.submit_answer()
        engine.advance()

        engine.tick()
        engine.tick()

        session = engine.session
        self.assertEqual(session.answers, [first.relocated_correct_index, SKIPPED])
        self.assertEqual(session.remaining_time_seconds, 0)
        results = engine.results
        self.assertEqual(results.score, 10)
        self.assertEqual(results.correct, 1)
        self.assertEqual(results.wrong, 1)
        self.assertEqual(results.percentage, 50)
        self.assertEqual(results.time_taken, 2)

    async def test_time_up_marks_every_remaining_question(self):
        session = self.start(count=4)
        self.answer_current()
        self.engine.advance()

        self.engine.handle_time_up()

        self.assertNotIn(UNSET, session.answers)
        self.assertEqual(session.answers[1:], [SKIPPED, SKIPPED, SKIPPED])
        self.assertIn(QuizEvent.TIME_UP, self.event_types())
        self.assertEqual(self.engine.results.total, 4)

    async def test_time_up_discards_pending_selection(self):
        session = self.start(count=2)
        self.engine.select_option(0)

        self.engine.handle_time_up()

        self.assertEqual(session.answers, [SKIPPED, SKIPPED])
        self.assertIs(session.selected_option, UNSET)

    async def test_time_up_wins_over_pending_advance(self):
        settings = TestFixtures.create_sample_quiz_settings(seconds_per_question=1, feedback_delay=0.05)
        engine = QuizEngine(settings=settings, rng=random.Random(2))
        engine.setup("html", lambda: self.pool)
        engine.start()

        presented = engine.get_current_question()
        engine.select_option(presented.relocated_correct_index)
        engine.submit_answer()
        self.assertTrue(engine.has_pending_advance)

        engine.tick()
        engine.tick()

        self.assertTrue(engine.is_ended)
        self.assertFalse(engine.has_pending_advance)
        self.assertEqual(engine.session.answers, [presented.relocated_correct_index, SKIPPED])
        self.assertEqual(engine.results.score, 10)

        await asyncio.sleep(0.1)
        self.assertEqual(engine.session.current_index, 0)
        self.assertIs(engine.session.phase, SubmissionPhase.ENDED)

    async def test_real_timer_ends_session(self):
        settings = TestFixtures.create_sample_quiz_settings(seconds_per_question=1, tick_interval=0.01)
        engine = QuizEngine(settings=settings, rng=random.Random(2))
        ended = Mock()
        engine.add_listener(lambda event, payload: ended(payload) if event is QuizEvent.SESSION_ENDED else None)
        engine.setup("html", lambda: self.pool)
        engine.start()

        ok = await AsyncTestHelpers.wait_until(lambda: engine.is_ended)

        self.assertTrue(ok)
        self.assertEqual(engine.session.answers, [SKIPPED, SKIPPED])
        self.assertEqual(engine.session.remaining_time_seconds, 0)
        self.assertFalse(engine.timer_running)
        ended.assert_called_once_with(engine.results)

    async def test_time_band(self):
        settings = TestFixtures.create_sample_quiz_settings(seconds_per_question=65)
        engine = QuizEngine(settings=settings, rng=random.Random(2))
        engine.setup("html", lambda: self.pool)
        engine.start()
        try:
            self.assertIs(engine.time_band(), TimeBand.NORMAL)
            for _ in range(10):
                engine.tick()
            self.assertIs(engine.time_band(), TimeBand.WARNING)
            for _ in range(60):
                engine.tick()
            self.assertIs(engine.time_band(), TimeBand.DANGER)
        finally:
            engine.reset()


class TestLifecycleSafety(EngineTestCase):
    """Test idempotent end, reset and stale callbacks."""

    async def test_end_session_is_idempotent(self):
        self.start()
        first = self.engine.end_session()
        second = self.engine.end_session()

        self.assertIs(first, second)
        self.assertEqual(self.event_types().count(QuizEvent.SESSION_ENDED), 1)

    async def test_end_session_without_session_raises(self):
        with self.assertRaises(InvalidSessionStateError):
            self.engine.end_session()

    async def test_handle_time_up_after_end_returns_cached(self):
        self.start()
        results = self.engine.end_session()
        self.assertIs(self.engine.handle_time_up(), results)
        self.assertNotIn(QuizEvent.TIME_UP, self.event_types())

    async def test_stop_timer_is_idempotent(self):
        self.start()
        self.engine.stop_timer()
        self.engine.stop_timer()
        self.assertFalse(self.engine.timer_running)

    async def test_reset_cancels_scheduled_work(self):
        self.start()
        self.answer_current()

        self.engine.reset()

        self.assertIsNone(self.engine.session)
        self.assertIsNone(self.engine.results)
        self.assertFalse(self.engine.timer_running)
        self.assertFalse(self.engine.has_pending_advance)

    async def test_stale_callbacks_are_ignored(self):
        self.start()
        old_generation = self.engine.generation
        self.answer_current()

        self.engine.setup("css", lambda: self.pool)
        self.engine.start()
        session = self.engine.session

        self.engine._on_timer_tick(old_generation)
        self.engine._on_advance_due(old_generation)
        await asyncio.sleep(0.05)

        self.assertEqual(session.remaining_time_seconds, session.total_time_seconds)
        self.assertEqual(session.current_index, 0)
        self.assertIs(session.phase, SubmissionPhase.AWAITING_SELECTION)

    async def test_listener_errors_do_not_break_flow(self):
        def broken_listener(event, payload):
            raise RuntimeError("render failed")

        self.engine.add_listener(broken_listener)
        session = self.start()
        self.answer_current()
        await self.wait_for_advance()

        self.assertEqual(session.current_index, 1)
        self.assertEqual(session.score, 10)

    async def test_remove_listener(self):
        listener = Mock()
        self.engine.add_listener(listener)
        self.engine.remove_listener(listener)
        self.engine.remove_listener(listener)
        self.start()
        listener.assert_not_called()


class TestQueries(EngineTestCase):
    """Test presentation queries."""

    async def test_progress(self):
        self.start(count=4)
        progress = self.engine.get_progress()
        self.assertEqual((progress.current, progress.total), (1, 4))
        self.assertEqual(progress.percentage_complete, 25.0)

    async def test_progress_without_session(self):
        self.assertIsNone(self.engine.get_progress())
        self.assertIsNone(self.engine.get_current_question())

    async def test_time_band_without_session_is_normal(self):
        self.assertIs(self.engine.time_band(), TimeBand.NORMAL)

    async def test_current_question_none_after_end(self):
        self.start()
        self.engine.end_session()
        self.assertIsNone(self.engine.get_current_question())

    async def test_category_name_lookup(self):
        engine = QuizEngine(settings=self.settings, categories={"css": Category("css", "CSS", "🎨")})
        engine.setup("css", lambda: self.pool)
        self.assertEqual(engine.category_name, "CSS")
        engine.setup("html", lambda: self.pool)
        self.assertEqual(engine.category_name, "html")

    async def test_build_review_after_time_up(self):
        self.start(count=2)
        self.answer_current(correct=False)
        self.engine.advance()
        self.engine.handle_time_up()

        review = self.engine.build_review()

        self.assertEqual(len(review), 2)
        self.assertFalse(review[0].is_correct)
        self.assertFalse(review[0].was_skipped)
        self.assertTrue(review[1].was_skipped)
        self.assertEqual(review[1].user_answer_text, "Not answered")


if __name__ == '__main__':
    unittest.main()
