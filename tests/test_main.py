"""
Unit tests for the bot entry point: config loading and token lookup.
"""
import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from main import StartupError, describe_quiz_setup, get_bot_token, load_config, main


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "config.json"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_load_valid_config(self):
        self.config_path.write_text(json.dumps({"bot": {"token": "abc"}}), encoding='utf-8')
        self.assertEqual(load_config(self.config_path), {"bot": {"token": "abc"}})

    def test_missing_config(self):
        with self.assertRaises(StartupError) as ctx:
            load_config(self.config_path)
        self.assertIn("not found", str(ctx.exception))

    def test_invalid_json(self):
        self.config_path.write_text("{ nope", encoding='utf-8')
        with self.assertRaises(StartupError) as ctx:
            load_config(self.config_path)
        self.assertIn("not valid JSON", str(ctx.exception))

    def test_config_must_be_object(self):
        self.config_path.write_text("[1, 2]", encoding='utf-8')
        with self.assertRaises(StartupError):
            load_config(self.config_path)

    def test_main_reports_startup_error(self):
        with patch('builtins.print') as mock_print:
            exit_code = main([str(self.config_path)])

        self.assertEqual(exit_code, 1)
        self.assertTrue(any("not found" in str(call) for call in mock_print.call_args_list))


class TestBotToken(unittest.TestCase):

    def test_environment_overrides_config(self):
        with patch.dict(os.environ, {'DISCORD_BOT_TOKEN': 'from-env'}):
            self.assertEqual(get_bot_token({"bot": {"token": "from-file"}}), "from-env")

    def test_token_from_config(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(get_bot_token({"bot": {"token": "from-file"}}), "from-file")

    def test_placeholder_token_rejected(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(StartupError):
                get_bot_token({"bot": {"token": "YOUR_DISCORD_BOT_TOKEN_HERE"}})
            with self.assertRaises(StartupError):
                get_bot_token({})


class TestQuizSetupSummary(unittest.TestCase):

    def test_summary_uses_quiz_section(self):
        summary = describe_quiz_setup({"quiz": {"quiz_directory": "./bank/", "questions_per_quiz": 5}})
        self.assertEqual(summary, "quiz files in ./bank/, 5 questions per quiz, 60s per question")


if __name__ == '__main__':
    unittest.main()
