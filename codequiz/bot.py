import discord
from discord import app_commands
from discord.ext import commands
import logging
import asyncio
from typing import Any, Callable, Awaitable, List, Optional, Set
import os
from pathlib import Path

from .data_manager import DataManager
from .config_manager import ConfigManager
from .models import AnswerFeedback, LeaderboardEntry, PresentedQuestion, Results, SubmissionPhase, TimeBand
from .quiz_controller import QuizController
from .quiz_engine import QuizEvent
from .results import result_tier
from .timers import format_clock

logger = logging.getLogger(__name__)

BAND_COLORS = {
    TimeBand.NORMAL: 0x00ff00,
    TimeBand.WARNING: 0xff6600,
    TimeBand.DANGER: 0xff0000,
}
BAND_EMOJI = {
    TimeBand.NORMAL: "⏱️",
    TimeBand.WARNING: "⚠️",
    TimeBand.DANGER: "🚨",
}
OPTION_EMOJI = ["1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣", "7️⃣", "8️⃣", "9️⃣", "🔟"]
MAX_REVIEW_FIELDS = 25


def option_label(index: int) -> str:
    return OPTION_EMOJI[index] if index < len(OPTION_EMOJI) else f"{index + 1}."


def build_question_embed(
    presented: PresentedQuestion,
    question_number: int,
    total_questions: int,
    category_name: str,
    remaining_time: int,
    band: TimeBand,
    selected: Optional[int] = None,
    feedback: Optional[AnswerFeedback] = None
) -> discord.Embed:
    """
    Build the embed for the current question.

    Args:
        presented: Question with its shuffled options
        question_number: Current question number (1-based)
        total_questions: Total questions in the quiz
        category_name: Display name of the quiz category
        remaining_time: Seconds left on the session clock
        band: Time band used for the embed colour
        selected: Selected option, if any
        feedback: Submitted answer feedback, if any

    Returns:
        Discord embed for the question message
    """
    lines = []
    for i, option in enumerate(presented.shuffled_options):
        marker = ""
        if feedback is not None:
            if i == feedback.correct_index:
                marker = " ✅"
            elif i == feedback.selected_index:
                marker = " ❌"
        elif selected == i:
            marker = " ◀️"
        lines.append(f"{option_label(i)} {option}{marker}")

    if feedback is not None:
        color = 0x00ff00 if feedback.is_correct else 0xff0000
    else:
        color = BAND_COLORS[band]

    embed = discord.Embed(
        title=f"🎯 Question {question_number}/{total_questions}",
        description=f"{presented.text}\n\n" + "\n".join(lines),
        color=color
    )
    embed.add_field(
        name=f"{BAND_EMOJI[band]} Time Remaining",
        value=format_clock(remaining_time),
        inline=True
    )
    embed.add_field(name="📚 Category", value=category_name, inline=True)

    if feedback is not None:
        if feedback.is_correct:
            embed.set_footer(text=f"✅ Correct! +{feedback.points_awarded} points")
        else:
            embed.set_footer(text="❌ Wrong answer")
    elif selected is not None:
        embed.set_footer(text="Use /submit to lock in your answer")
    elif band is TimeBand.DANGER:
        embed.set_footer(text="🚨 Time running out!")
    else:
        embed.set_footer(text="Use /select <option> then /submit")
    return embed


def build_results_embed(results: Results, category_name: str, time_up: bool = False) -> discord.Embed:
    """Build the results embed with the result tier as headline."""
    tier = result_tier(results.percentage)
    embed = discord.Embed(
        title=tier.title,
        description=f"**{category_name}** quiz finished" + (" (time's up)" if time_up else ""),
        color=0x6699ff
    )
    embed.add_field(name="🏅 Score", value=str(results.score), inline=True)
    embed.add_field(name="📊 Percentage", value=f"{results.percentage}%", inline=True)
    embed.add_field(name="⏱️ Time Taken", value=format_clock(results.time_taken), inline=True)
    embed.add_field(name="✅ Correct", value=str(results.correct), inline=True)
    embed.add_field(name="❌ Wrong", value=str(results.wrong), inline=True)
    embed.add_field(name="📝 Total", value=str(results.total), inline=True)
    embed.set_footer(text="Use /review to see your answers or /retry to play again")
    return embed


class ChannelPresenter:
    """
    Renders engine events for one channel.

    The listener is called synchronously by the engine, so every embed is
    built from the state at event time and only the send/edit is scheduled.
    Renders run one at a time in event order and wait until release() is
    called, which lets the command response go out first.
    """

    TICK_RENDER_INTERVAL = 10

    def __init__(self, bot: "QuizBot", channel: discord.abc.Messageable, channel_id: int):
        self.bot = bot
        self.channel = channel
        self.channel_id = channel_id
        self.message: Optional[discord.Message] = None
        self._lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()
        self._last_band: Optional[TimeBand] = None
        self._selected: Optional[int] = None
        self._time_up = False

    def release(self) -> None:
        """Allow scheduled renders to reach the channel."""
        self._ready.set()

    async def wait_idle(self) -> None:
        """Wait for every scheduled render to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def __call__(self, event: QuizEvent, payload: Any) -> None:
        engine = self.bot.quiz_controller.get_engine(self.channel_id)
        if engine is None or engine.session is None:
            return
        session = engine.session

        if event is QuizEvent.QUESTION_PRESENTED:
            self._selected = None
            self._last_band = engine.time_band()
            embed = self._question_embed(engine, payload)
            self._schedule(self._send_question(embed), "present_question")

        elif event is QuizEvent.OPTION_SELECTED:
            self._selected = payload
            embed = self._question_embed(engine, session.current_question)
            self._schedule(self._edit_question(embed), "show_selection")

        elif event is QuizEvent.ANSWER_SUBMITTED:
            embed = self._question_embed(engine, session.current_question, feedback=payload)
            self._schedule(self._edit_question(embed), "show_feedback")

        elif event is QuizEvent.TIMER_TICK:
            band = engine.time_band()
            if band is self._last_band and payload % self.TICK_RENDER_INTERVAL != 0:
                return
            self._last_band = band
            if session.phase is SubmissionPhase.FEEDBACK:
                return
            embed = self._question_embed(engine, session.current_question)
            self._schedule(self._edit_question(embed), "update_timer")

        elif event is QuizEvent.TIME_UP:
            self._time_up = True

        elif event is QuizEvent.SESSION_ENDED:
            embed = build_results_embed(payload, engine.category_name, self._time_up)
            self._schedule(self._send_results(embed), "show_results")

    def _question_embed(self, engine, presented: PresentedQuestion, feedback: Optional[AnswerFeedback] = None) -> discord.Embed:
        session = engine.session
        progress = engine.get_progress()
        return build_question_embed(
            presented,
            progress.current,
            progress.total,
            engine.category_name,
            session.remaining_time_seconds,
            engine.time_band(),
            selected=self._selected,
            feedback=feedback
        )

    def _schedule(self, coro: Awaitable[None], operation: str) -> None:
        task = asyncio.get_running_loop().create_task(self._run_render(coro, operation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_render(self, coro: Awaitable[None], operation: str) -> None:
        await self._ready.wait()
        async with self._lock:
            try:
                await coro
            except discord.HTTPException as e:
                logger.error(f"Discord error during {operation} in channel {self.channel_id}: {e}")
            except Exception as e:
                logger.error(f"Error during {operation} in channel {self.channel_id}: {e}", exc_info=True)

    async def _send_question(self, embed: discord.Embed) -> None:
        self.message = await self.bot.send_with_retry(lambda: self.channel.send(embed=embed), "present_question")

    async def _edit_question(self, embed: discord.Embed) -> None:
        message = self.message
        if message is None:
            return
        await self.bot.send_with_retry(lambda: message.edit(embed=embed), "edit_question")

    async def _send_results(self, embed: discord.Embed) -> None:
        await self.bot.send_with_retry(lambda: self.channel.send(embed=embed), "show_results")


class QuizBot(commands.Bot):
    """Discord bot for conducting code quizzes"""

    def __init__(self, config=None):
        # Minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None
        self.recent_results: List[LeaderboardEntry] = []

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                await self.apply_configuration()

            self.data_manager = DataManager(self.config_manager.get_quiz_directory())
            await self.load_quiz_data()

            self.quiz_controller = QuizController(
                self.data_manager,
                self.config_manager,
                results_sink=self.record_results
            )

            await self.setup_commands()
            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def apply_configuration(self):
        """Apply settings from configuration file to the config manager."""
        rejected = self.config_manager.apply_config(self.app_config)
        for message in rejected:
            logger.warning(f"Configuration value ignored: {message}")
        logger.info("Configuration applied")

    async def load_quiz_data(self):
        """Load quiz files from the configured quiz directory"""
        try:
            quiz_directory = self.config_manager.get_quiz_directory()
            self.data_manager.quiz_directory = Path(quiz_directory)
            categories = self.data_manager.load_quiz_files()
            logger.info(f"Loaded {len(categories)} categories from {quiz_directory}")
        except Exception as e:
            logger.error(f"Error loading quiz data: {e}", exc_info=True)

    def record_results(self, username: str, results: Results, entry: LeaderboardEntry) -> None:
        """Results sink: keep the entry for this run and log it."""
        self.recent_results.append(entry)
        logger.info(
            f"Recorded result for {username}: {results.score} points in {results.category}",
            extra={
                'event_type': 'result_recorded',
                'player': username,
                'category': results.category,
                'score': results.score,
                'time_taken': results.time_taken
            }
        )

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="categories", description="List the available quiz categories")
        async def categories_command(interaction: discord.Interaction):
            await self.handle_categories(interaction)

        @self.tree.command(name="start", description="Start a quiz in a category")
        @app_commands.describe(category="Category id, see /categories")
        async def start_command(interaction: discord.Interaction, category: str):
            await self.handle_start(interaction, category)

        @start_command.autocomplete("category")
        async def category_autocomplete(interaction: discord.Interaction, current: str):
            return [
                app_commands.Choice(name=f"{c.icon} {c.name}".strip(), value=c.id)
                for c in self.data_manager.get_categories()
                if current.lower() in c.id.lower() or current.lower() in c.name.lower()
            ][:25]

        @self.tree.command(name="select", description="Select an option for the current question")
        @app_commands.describe(option="Option number as shown in the question")
        async def select_command(interaction: discord.Interaction, option: int):
            await self.handle_select(interaction, option)

        @self.tree.command(name="submit", description="Submit the selected option")
        async def submit_command(interaction: discord.Interaction):
            await self.handle_submit(interaction)

        @self.tree.command(name="status", description="Show current quiz status and progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="review", description="Review the answers of the finished quiz")
        async def review_command(interaction: discord.Interaction):
            await self.handle_review(interaction)

        @self.tree.command(name="stop", description="Stop the current quiz without results")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="retry", description="Play the last category again")
        async def retry_command(interaction: discord.Interaction):
            await self.handle_retry(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Bot is in {len(self.guilds)} guilds")
        print(f"🤖 {self.user} is Ready and Online!")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
            print(f"⚡ Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    # ------------------------------------------------------------------
    # Discord API error handling

    async def handle_discord_api_error(self, error: Exception, operation: str, interaction: discord.Interaction = None) -> bool:
        """
        Handle Discord API errors with appropriate retry logic and user feedback.

        Args:
            error: The Discord API error
            operation: Description of the operation that failed
            interaction: Discord interaction object (optional)

        Returns:
            True if error was handled and operation should be retried, False otherwise
        """
        if isinstance(error, discord.HTTPException):
            if error.status == 429:
                retry_after = getattr(error, 'retry_after', 5)
                logger.warning(f"Rate limited during {operation}, waiting {retry_after}s")
                await asyncio.sleep(retry_after)
                return True

            elif error.status in [500, 502, 503, 504]:
                logger.warning(f"Discord server error during {operation}: {error.status}")
                await asyncio.sleep(2)
                return True

            elif error.status == 403:
                logger.error(f"Permission denied during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "Bot doesn't have permission to perform this action. Please check bot permissions.",
                        "❌ Permission Error"
                    )
                return False

            else:
                logger.error(f"Discord API error during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "Discord API error occurred. Please try again in a moment.",
                        "❌ Discord Error"
                    )
                return False

        elif isinstance(error, asyncio.TimeoutError):
            logger.warning(f"Timeout during {operation}")
            if interaction:
                await self.send_error_response(interaction, "Operation timed out. Please try again.", "❌ Timeout Error")
            return False

        logger.error(f"Unexpected error during {operation}: {error}")
        if interaction:
            await self.send_error_response(
                interaction,
                "An unexpected error occurred. Please try again.",
                "❌ Unexpected Error"
            )
        return False

    async def send_with_retry(self, send: Callable[[], Awaitable[Any]], operation: str, max_retries: int = 3) -> Any:
        """Run a Discord call, retrying on rate limits and server errors."""
        for attempt in range(max_retries):
            try:
                return await send()
            except discord.HTTPException as e:
                if attempt == max_retries - 1 or not await self.handle_discord_api_error(e, operation):
                    raise
        return None

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=0xff0000)
            embed.set_footer(text="If this error persists, try using /help for available commands")
            await self._respond(interaction, embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=0x6699ff)
            await self._respond(interaction, embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=0xffaa00)
            await self._respond(interaction, embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")

    async def _respond(self, interaction: discord.Interaction, **kwargs):
        if interaction.response.is_done():
            await interaction.followup.send(**kwargs)
        else:
            await interaction.response.send_message(**kwargs)

    # ------------------------------------------------------------------
    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            help_embed = discord.Embed(
                title="🎯 Code Quiz Commands",
                description="Test your programming knowledge against the clock",
                color=0x00ff00
            )
            help_embed.add_field(
                name="🎮 Playing",
                value=(
                    "`/categories` - List the available quiz categories\n"
                    "`/start <category>` - Start a quiz\n"
                    "`/select <option>` - Choose an option for the current question\n"
                    "`/submit` - Lock in the selected option\n"
                    "`/status` - Show progress, score and time left"
                ),
                inline=False
            )
            help_embed.add_field(
                name="🏁 After the Quiz",
                value=(
                    "`/review` - Review every question with the correct answer\n"
                    "`/retry` - Play the same category again\n"
                    "`/stop` - Abandon the current quiz"
                ),
                inline=False
            )
            help_embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            help_embed.set_footer(text="The clock covers the whole quiz, not each question")
            await interaction.response.send_message(embed=help_embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "help", interaction)
        except Exception as e:
            logger.error(f"Error in help command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to display help information", "❌ Help Error")

    async def handle_categories(self, interaction: discord.Interaction):
        """Handle /categories command"""
        try:
            categories = self.data_manager.get_categories()
            if not categories:
                await self.send_warning_response(
                    interaction,
                    "No quiz files found. Add JSON files to the quizzes folder.",
                    "⚠️ No Categories"
                )
                return

            counts = self.data_manager.get_question_count_by_category()
            embed = discord.Embed(title="📚 Quiz Categories", color=0x6699ff)
            embed.description = "\n".join(
                f"{c.icon} **{c.name}** (`{c.id}`) - {counts.get(c.id, 0)} questions".strip()
                for c in categories
            )
            if self.data_manager.is_fallback_quiz_active():
                embed.add_field(
                    name="⚠️ Using Fallback Quiz",
                    value="Quiz files could not be loaded, only a basic fallback quiz is available.",
                    inline=False
                )
            embed.set_footer(text="Start one with /start <category>")
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "categories", interaction)
        except Exception as e:
            logger.error(f"Error in categories command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to list categories")

    async def handle_start(self, interaction: discord.Interaction, category: str):
        """Handle /start command"""
        presenter = ChannelPresenter(self, interaction.channel, interaction.channel_id)
        result = self.quiz_controller.start_quiz(
            interaction.channel_id,
            category,
            username=interaction.user.name,
            presenter=presenter
        )
        await self._announce_start(interaction, result, presenter, "start_quiz")

    async def handle_retry(self, interaction: discord.Interaction):
        """Handle /retry command"""
        presenter = ChannelPresenter(self, interaction.channel, interaction.channel_id)
        result = self.quiz_controller.retry_quiz(
            interaction.channel_id,
            username=interaction.user.name,
            presenter=presenter
        )
        await self._announce_start(interaction, result, presenter, "retry_quiz")

    async def _announce_start(self, interaction: discord.Interaction, result: dict, presenter: ChannelPresenter, operation: str):
        try:
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Quiz Start Failed")
                return

            session_info = result['session_info']
            embed = discord.Embed(
                title="🎯 Quiz Started!",
                description=f"**{session_info['category_name']}**",
                color=0x00ff00
            )
            embed.add_field(
                name="📊 Quiz Details",
                value=(
                    f"Questions: {session_info['total_questions']}\n"
                    f"Time: {format_clock(session_info['total_time'])} for the whole quiz\n"
                    f"Player: {session_info['player'] or 'guest'}"
                ),
                inline=False
            )
            if self.data_manager.is_fallback_quiz_active():
                embed.add_field(
                    name="⚠️ Using Fallback Quiz",
                    value="This is a basic fallback quiz due to loading errors.",
                    inline=False
                )
            embed.set_footer(text="Get ready for the first question!")
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, operation, interaction)
        finally:
            presenter.release()

    async def handle_select(self, interaction: discord.Interaction, option: int):
        """Handle /select command; options are numbered from 1 for players"""
        try:
            result = self.quiz_controller.select_option(interaction.channel_id, option - 1)
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Selection Failed")
                return
            await self.send_info_response(
                interaction,
                f"Selected {option_label(result['selected_index'])} {result['selected_text']}",
                "👉 Option Selected"
            )
        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "select_option", interaction)

    async def handle_submit(self, interaction: discord.Interaction):
        """Handle /submit command"""
        try:
            result = self.quiz_controller.submit_answer(interaction.channel_id)
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Submit Failed")
                return

            feedback = result['feedback']
            if feedback.is_correct:
                await self.send_info_response(interaction, f"+{feedback.points_awarded} points", "✅ Correct!")
            else:
                await self.send_info_response(
                    interaction,
                    f"The correct answer was option {feedback.correct_index + 1}",
                    "❌ Wrong Answer"
                )
        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "submit_answer", interaction)

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            channel_id = interaction.channel_id
            session_info = self.quiz_controller.get_session_progress(channel_id)
            summary = self.quiz_controller.get_session_status_summary(channel_id)

            if session_info is None:
                await self.send_info_response(interaction, summary, "📊 Quiz Status")
                return

            band = TimeBand(session_info['time_band'])
            embed = discord.Embed(
                title=f"📊 {session_info['category_name']}",
                description=summary,
                color=BAND_COLORS[band] if session_info['is_active'] else 0x6699ff
            )
            if session_info['is_active']:
                embed.add_field(
                    name="📍 Progress",
                    value=(
                        f"Question {session_info['current_question']}/{session_info['total_questions']} "
                        f"({session_info['percentage_complete']:.0f}%)"
                    ),
                    inline=True
                )
                embed.add_field(
                    name=f"{BAND_EMOJI[band]} Time Remaining",
                    value=format_clock(session_info['remaining_time']),
                    inline=True
                )
                embed.add_field(name="🏅 Score", value=str(session_info['score']), inline=True)
                embed.set_footer(text="Use /stop to abandon the quiz")
            else:
                embed.set_footer(text="Use /review or /retry")

            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "status", interaction)
        except Exception as e:
            logger.error(f"Error in status command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to get quiz status", "❌ Status Error")

    async def handle_review(self, interaction: discord.Interaction):
        """Handle /review command"""
        try:
            review = self.quiz_controller.get_review(interaction.channel_id)
            if review is None:
                await self.send_warning_response(
                    interaction,
                    "There is no finished quiz in this channel to review.",
                    "⚠️ Nothing to Review"
                )
                return

            embed = discord.Embed(title="📝 Quiz Review", color=0x6699ff)
            for number, item in enumerate(review[:MAX_REVIEW_FIELDS], start=1):
                status = "⏭️" if item.was_skipped else ("✅" if item.is_correct else "❌")
                value = f"Your answer: {item.user_answer_text}"
                if not item.is_correct:
                    value += f"\nCorrect answer: {item.correct_answer_text}"
                embed.add_field(
                    name=f"{status} {number}. {item.question_text}"[:256],
                    value=value[:1024],
                    inline=False
                )
            if len(review) > MAX_REVIEW_FIELDS:
                embed.set_footer(text=f"Showing the first {MAX_REVIEW_FIELDS} of {len(review)} questions")
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "review", interaction)
        except Exception as e:
            logger.error(f"Error in review command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to build the review", "❌ Review Error")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        try:
            result = self.quiz_controller.stop_quiz(interaction.channel_id)
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Stop Failed")
                return

            session_info = result['session_info'] or {}
            embed = discord.Embed(
                title="🛑 Quiz Stopped",
                description=f"**{session_info.get('category_name', 'Quiz')}** was stopped. No results were recorded.",
                color=0xffaa00
            )
            embed.set_footer(text="Use /start to begin a new quiz")
            await interaction.response.send_message(embed=embed)

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "stop_quiz", interaction)


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Code Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
