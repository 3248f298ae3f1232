#!/usr/bin/env python3
"""
Code Quiz Bot entry point.

Reads the bot, quiz and logging sections from a JSON config file, sets up
logging and runs the Discord bot until interrupted.

Usage:
    python main.py                 # uses ./config.json
    python main.py path/to/config.json

The DISCORD_BOT_TOKEN environment variable takes precedence over bot.token.
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

DEFAULT_CONFIG_PATH = Path("config.json")
TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"


class StartupError(Exception):
    """Raised when the bot cannot be started from the given configuration."""


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> dict:
    """Read and parse the JSON config file."""
    if not config_path.is_file():
        raise StartupError(f"{config_path} not found; create it from the config.json in the repository")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise StartupError(f"{config_path} is not valid JSON: {e}") from e
    except OSError as e:
        raise StartupError(f"Cannot read {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise StartupError(f"{config_path} must contain a JSON object")
    return config


def get_bot_token(config: dict) -> str:
    """Token from DISCORD_BOT_TOKEN, falling back to bot.token in the config."""
    token = os.getenv('DISCORD_BOT_TOKEN') or config.get('bot', {}).get('token')
    if not token or token == TOKEN_PLACEHOLDER:
        raise StartupError("No Discord bot token: set DISCORD_BOT_TOKEN or bot.token in the config file")
    return token


def setup_logging_from_config(config: dict) -> None:
    log_config = config.get('logging', {})
    log_level = getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO)
    log_directory = Path(log_config.get('log_directory', './logs/'))
    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / "bot.log", encoding='utf-8')
        ]
    )

    # Gateway and HTTP chatter from discord.py
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('discord.http').setLevel(logging.WARNING)


def describe_quiz_setup(config: dict) -> str:
    """One-line summary of where questions come from and how sessions are sized."""
    quiz = config.get('quiz', {})
    return (
        f"quiz files in {quiz.get('quiz_directory', './quizzes/')}, "
        f"{quiz.get('questions_per_quiz', 10)} questions per quiz, "
        f"{quiz.get('seconds_per_question', 60)}s per question"
    )


async def run_bot_with_config(config_path: Path) -> None:
    config = load_config(config_path)
    setup_logging_from_config(config)
    token = get_bot_token(config)

    logging.getLogger(__name__).info(f"Starting Code Quiz bot: {describe_quiz_setup(config)}")

    from codequiz.bot import run_bot
    await run_bot(token, config)


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    config_path = Path(argv[0]) if argv else DEFAULT_CONFIG_PATH

    print(f"🧩 Code Quiz bot starting with {config_path}")
    try:
        asyncio.run(run_bot_with_config(config_path))
    except StartupError as e:
        print(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n🛑 Code Quiz bot stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
