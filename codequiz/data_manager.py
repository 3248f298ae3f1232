"""
Data manager for JSON question files and question pool access.
"""
import json
import os
import logging
import random
from typing import Any, Dict, List, Optional
from pathlib import Path

from .models import Category, Question
from .sampler import draw_questions


class DataManager:
    """Loads and validates JSON quiz files and serves them as a question pool."""

    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB limit

    def __init__(self, quiz_directory: str = "./quizzes/", rng: Optional[random.Random] = None):
        """
        Initialize DataManager with quiz directory path.

        Args:
            quiz_directory: Path to directory containing JSON quiz files
            rng: Random source for get_quiz_questions
        """
        self.quiz_directory = Path(quiz_directory)
        self.categories: Dict[str, Category] = {}
        self.questions: List[Question] = []
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.fallback_quiz_created = False
        self._rng = rng

    def load_quiz_files(self) -> Dict[str, Category]:
        """
        Load all JSON files from the quiz directory.

        Each file holds one category:
        {
            "category": "python",
            "name": "Python",
            "icon": "🐍",
            "quiz": [
                {"id": "p1", "question": str, "options": [str, ...], "correct": int}
            ]
        }

        Returns:
            Dictionary mapping category ids to Category objects
        """
        self.categories.clear()
        self.questions.clear()
        self.load_errors.clear()
        self.fallback_quiz_created = False

        if not self.quiz_directory.is_dir():
            self.logger.warning(f"Quiz directory not found: {self.quiz_directory}")
            self.load_errors.append(f"Quiz directory not found: {self.quiz_directory}")
            return self._create_fallback_quiz()

        try:
            json_files = sorted(self.quiz_directory.glob("*.json"))
        except OSError as e:
            self.load_errors.append(f"System error scanning {self.quiz_directory}: {e}")
            return self._create_fallback_quiz()

        if not json_files:
            self.logger.warning(f"No JSON files found in {self.quiz_directory}")
            self.load_errors.append(f"No quiz files found in {self.quiz_directory}")
            return self._create_fallback_quiz()

        successful_loads = 0
        for json_file in json_files:
            load_result = self._load_quiz_file_safely(json_file)
            if load_result['success']:
                successful_loads += 1
            else:
                self.load_errors.append(f"{json_file.name}: {load_result['error']}")

        if successful_loads == 0:
            self.logger.error("No quiz files could be loaded successfully")
            self.load_errors.append("All quiz files failed to load")
            return self._create_fallback_quiz()

        self.logger.info(
            f"Successfully loaded {successful_loads} quiz files with {len(self.questions)} questions"
        )
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.categories

    def _load_quiz_file_safely(self, json_file: Path) -> Dict[str, Any]:
        """
        Load a single quiz file with error handling.

        Args:
            json_file: Path to the JSON file to load

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            if not os.access(json_file, os.R_OK):
                return {'success': False, 'error': "Permission denied: Cannot read file"}

            file_size = json_file.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024 / 1024:.1f}MB). "
                             f"Maximum size is {self.MAX_FILE_SIZE / 1024 / 1024}MB"
                }

            with open(json_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if not self.validate_quiz_structure(data):
                return {'success': False, 'error': "Invalid quiz structure"}

            category = self._parse_category(data, json_file.stem)
            if category.id in self.categories:
                return {'success': False, 'error': f"Duplicate category '{category.id}'"}

            questions = self._parse_questions(data, category.id)
            self.categories[category.id] = category
            self.questions.extend(questions)
            self.logger.info(f"Loaded category '{category.id}' with {len(questions)} questions")
            return {'success': True}

        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {json_file}: {e}")
            return {'success': False, 'error': f"Invalid JSON: {e}"}
        except UnicodeDecodeError as e:
            self.logger.error(f"File {json_file} is not valid UTF-8: {e}")
            return {'success': False, 'error': f"Encoding error: {e}"}
        except OSError as e:
            return {'success': False, 'error': f"System error: {e}"}
        except Exception as e:
            self.logger.error(f"Unexpected error loading {json_file}: {e}", exc_info=True)
            return {'success': False, 'error': f"Unexpected error: {e}"}

    def validate_quiz_structure(self, data: Any) -> bool:
        """
        Validate that JSON data has the correct quiz structure.

        Args:
            data: Parsed JSON data to validate

        Returns:
            True if structure is valid, False otherwise
        """
        if not isinstance(data, dict):
            self.logger.error("Quiz data must be a JSON object")
            return False

        if "category" in data and not isinstance(data["category"], str):
            self.logger.error("'category' value must be a string")
            return False

        quiz_array = data.get("quiz")
        if not isinstance(quiz_array, list):
            self.logger.error("Quiz data must contain a 'quiz' array")
            return False

        if not quiz_array:
            self.logger.error("Quiz array cannot be empty")
            return False

        seen_ids = set()
        for i, question_data in enumerate(quiz_array):
            if not isinstance(question_data, dict):
                self.logger.error(f"Question {i} must be an object")
                return False

            for field_name in ("question", "options", "correct"):
                if field_name not in question_data:
                    self.logger.error(f"Question {i} missing '{field_name}' field")
                    return False

            if not isinstance(question_data["question"], str) or not question_data["question"].strip():
                self.logger.error(f"Question {i} 'question' field must be a non-empty string")
                return False

            options = question_data["options"]
            if not isinstance(options, list) or len(options) < 2 or not all(isinstance(o, str) for o in options):
                self.logger.error(f"Question {i} 'options' field must be an array of at least 2 strings")
                return False

            correct = question_data["correct"]
            if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < len(options):
                self.logger.error(f"Question {i} 'correct' field must be an index into 'options'")
                return False

            question_id = question_data.get("id")
            if question_id is not None:
                if isinstance(question_id, bool) or not isinstance(question_id, (str, int)):
                    self.logger.error(f"Question {i} 'id' field must be a string or integer")
                    return False
                if question_id in seen_ids:
                    self.logger.error(f"Question {i} has duplicate id '{question_id}'")
                    return False
                seen_ids.add(question_id)

        return True

    def _parse_category(self, quiz_data: dict, default_id: str) -> Category:
        category_id = quiz_data.get("category", default_id)
        return Category(
            id=category_id,
            name=quiz_data.get("name", category_id),
            icon=quiz_data.get("icon", "")
        )

    def _parse_questions(self, quiz_data: dict, category_id: str) -> List[Question]:
        """
        Parse validated quiz data into Question objects.

        Args:
            quiz_data: Validated quiz data dictionary
            category_id: Category the questions belong to

        Returns:
            List of Question objects
        """
        return [
            Question(
                id=str(question_data.get("id", f"{category_id}-{i + 1}")),
                category=category_id,
                text=question_data["question"],
                options=question_data["options"],
                correct_index=question_data["correct"]
            )
            for i, question_data in enumerate(quiz_data["quiz"])
        ]

    def _create_fallback_quiz(self) -> Dict[str, Category]:
        """
        Create a minimal fallback quiz in memory when no quiz file could be loaded.

        Returns:
            Dictionary with the fallback category loaded
        """
        category = Category(id="fallback", name="Fallback", icon="🛟")
        self.categories[category.id] = category
        self.questions.append(Question(
            id="fallback-1",
            category=category.id,
            text="This is a fallback question. What should you do when quiz files can't be loaded?",
            options=(
                "Check the quiz directory and file permissions",
                "Delete the bot",
                "Nothing, it is fine"
            ),
            correct_index=0
        ))
        self.fallback_quiz_created = True
        self.logger.warning("Created fallback quiz due to file loading failures")
        return self.categories

    def get_all_questions(self) -> List[Question]:
        """Full question pool across all categories."""
        return list(self.questions)

    def get_questions(self, category: str) -> List[Question]:
        """All questions of one category."""
        return [q for q in self.questions if q.category == category]

    def get_quiz_questions(self, category: str, count: int) -> List[Question]:
        """
        Draw a random, duplicate-free set of questions for a category.

        Args:
            category: Category id
            count: Maximum number of questions

        Returns:
            Up to count questions in random order
        """
        return draw_questions(self.get_questions(category), count, self._rng)

    def get_categories(self) -> List[Category]:
        return list(self.categories.values())

    def get_category(self, category_id: str) -> Optional[Category]:
        return self.categories.get(category_id)

    def category_exists(self, category_id: str) -> bool:
        return category_id in self.categories

    def get_question_count_by_category(self) -> Dict[str, int]:
        """Number of questions per loaded category."""
        counts = {category_id: 0 for category_id in self.categories}
        for question in self.questions:
            counts[question.category] = counts.get(question.category, 0) + 1
        return counts

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_quiz_active(self) -> bool:
        return self.fallback_quiz_created

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_categories': len(self.categories),
            'total_questions': len(self.questions),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.is_fallback_quiz_active(),
            'quiz_directory': str(self.quiz_directory),
            'available_categories': list(self.categories.keys())
        }
