"""Default content loaded into an empty database at startup."""
import logging
from typing import Any, Dict, List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quizproctor.core.auth import hash_password
from quizproctor.core.config import DEFAULT_ADMIN_PASSWORD, DEFAULT_ADMIN_USER
from quizproctor.models.domain import Difficulty, Question
from quizproctor.models.orm import AdminUser, CodingChallenge, CodingTestCase, QuestionBucket
from quizproctor.store.quiz_store import QuizStore

logger = logging.getLogger(__name__)

DEFAULT_QUIZZES: List[Dict[str, Any]] = [
    {
        "id": "javascript",
        "name": "JavaScript Fundamentals",
        "description": "Test your knowledge of JavaScript basics and ES6+ features",
        "questions": [
            {"question": "What is the correct way to declare a variable in JavaScript?",
             "options": ["var myVar = 5;", "variable myVar = 5;", "v myVar = 5;", "declare myVar = 5;"], "correct": 0},
            {"question": "Which method is used to add an element to the end of an array?",
             "options": ["append()", "push()", "add()", "insert()"], "correct": 1},
            {"question": 'What does "===" operator do in JavaScript?',
             "options": ["Assignment", "Equality without type checking", "Strict equality with type checking", "Not equal"], "correct": 2},
            {"question": "Which of the following is NOT a JavaScript data type?",
             "options": ["Number", "String", "Boolean", "Float"], "correct": 3},
            {"question": "What is the output of: console.log(typeof null)?",
             "options": ["null", "undefined", "object", "boolean"], "correct": 2},
        ],
    },
    {
        "id": "python",
        "name": "Python Programming",
        "description": "Assess your Python programming skills and best practices",
        "questions": [
            {"question": "Which of the following is the correct way to create a list in Python?",
             "options": ["list = []", "list = ()", "list = {}", 'list = ""'], "correct": 0},
            {"question": "What is the output of: print(3 ** 2)?",
             "options": ["6", "9", "32", "Error"], "correct": 1},
            {"question": "Which keyword is used to define a function in Python?",
             "options": ["function", "def", "define", "func"], "correct": 1},
            {"question": "What does the len() function do?",
             "options": ["Returns the length of an object", "Creates a new list", "Sorts a list", "Removes duplicates"], "correct": 0},
            {"question": "Which of the following is used for comments in Python?",
             "options": ["//", "/* */", "#", "<!-- -->"], "correct": 2},
        ],
    },
    {
        "id": "react",
        "name": "React Development",
        "description": "Test your React.js knowledge and component-based development",
        "questions": [
            {"question": "What is JSX in React?",
             "options": ["A JavaScript library", "A syntax extension for JavaScript", "A CSS framework", "A database"], "correct": 1},
            {"question": "Which hook is used to manage state in functional components?",
             "options": ["useEffect", "useState", "useContext", "useReducer"], "correct": 1},
            {"question": "What is the virtual DOM?",
             "options": ["A real DOM element", "A JavaScript representation of the real DOM", "A CSS property", "A React component"], "correct": 1},
            {"question": "How do you pass data from parent to child component?",
             "options": ["Using state", "Using props", "Using context", "Using refs"], "correct": 1},
            {"question": "What is the purpose of useEffect hook?",
             "options": ["To manage state", "To handle side effects", "To create components", "To style components"], "correct": 1},
        ],
    },
]

# (name, subject, description, default quiz migrated into it)
DEFAULT_BUCKETS = [
    ("JavaScript Fundamentals", "Programming", "Basic JavaScript concepts, syntax, and core features", "javascript"),
    ("Python Basics", "Programming", "Python fundamentals, data structures, and syntax", "python"),
    ("Data Structures", "Computer Science", "Arrays, objects, stacks, queues, and basic algorithms", None),
    ("Web Development", "Programming", "HTML, CSS, DOM manipulation, and web technologies", "react"),
    ("Database Concepts", "Database", "SQL, database design, and data management", None),
]

DEFAULT_CHALLENGES: List[Dict[str, Any]] = [
    {
        "title": "Two Sum",
        "description": "Given an array of integers nums and an integer target, return indices of the two numbers "
                       "such that they add up to target. You may assume that each input would have exactly one "
                       "solution, and you may not use the same element twice.",
        "difficulty": "easy",
        "time_limit": 30,
        "starter_code": (
            "import ast\n\n"
            "def solution(nums, target):\n"
            "    # Return a list of two indices\n"
            "    pass\n\n"
            "nums, target = ast.literal_eval(input())\n"
            "print(solution(nums, target))\n"
        ),
        "solution_code": (
            "import ast\n\n"
            "def solution(nums, target):\n"
            "    seen = {}\n"
            "    for i, num in enumerate(nums):\n"
            "        if target - num in seen:\n"
            "            return [seen[target - num], i]\n"
            "        seen[num] = i\n"
            "    return []\n\n"
            "nums, target = ast.literal_eval(input())\n"
            "print(solution(nums, target))\n"
        ),
        "test_cases": [
            ("[2, 7, 11, 15], 9", "[0, 1]", False),
            ("[3, 2, 4], 6", "[1, 2]", False),
            ("[3, 3], 6", "[0, 1]", True),
        ],
    },
    {
        "title": "Palindrome Check",
        "description": "Write a function that checks if a given string is a palindrome. A palindrome is a word, "
                       "phrase, number, or other sequence of characters that reads the same forward and backward.",
        "difficulty": "easy",
        "time_limit": 20,
        "starter_code": (
            "def solution(s):\n"
            "    # Return True if palindrome, False otherwise\n"
            "    pass\n\n"
            "print(solution(input()))\n"
        ),
        "solution_code": (
            "def solution(s):\n"
            "    cleaned = ''.join(ch.lower() for ch in s if ch.isalnum())\n"
            "    return cleaned == cleaned[::-1]\n\n"
            "print(solution(input()))\n"
        ),
        "test_cases": [
            ("racecar", "True", False),
            ("hello", "False", False),
            ("A man a plan a canal Panama", "True", True),
        ],
    },
]


def difficulty_by_position(index: int, total: int) -> Difficulty:
    """Earliest 30% easy, next 30% medium, the rest hard."""
    if index >= int(total * 0.6):
        return Difficulty.HARD
    if index >= int(total * 0.3):
        return Difficulty.MEDIUM
    return Difficulty.EASY


def seed_admin(db: Session) -> None:
    if db.scalar(select(func.count()).select_from(AdminUser)):
        return
    db.add(AdminUser(username=DEFAULT_ADMIN_USER, password_hash=hash_password(DEFAULT_ADMIN_PASSWORD)))
    db.commit()
    logger.info(f"Default admin user created: {DEFAULT_ADMIN_USER}")


def seed_quizzes(store: QuizStore) -> None:
    if store.count_quizzes():
        return
    for quiz in DEFAULT_QUIZZES:
        store.create_quiz(
            quiz_id=quiz["id"], name=quiz["name"], description=quiz["description"],
            questions=[Question.model_validate(q) for q in quiz["questions"]], is_custom=False, commit=False,
        )
    store.db.commit()
    logger.info(f"Seeded {len(DEFAULT_QUIZZES)} default quizzes")


def seed_buckets(store: QuizStore) -> None:
    if store.db.scalar(select(func.count()).select_from(QuestionBucket)):
        return
    sources = {q["id"]: q for q in DEFAULT_QUIZZES}
    for name, subject, description, quiz_id in DEFAULT_BUCKETS:
        bucket = store.create_bucket(name=name, subject=subject, description=description)
        if quiz_id is None:
            continue
        questions = sources[quiz_id]["questions"]
        for i, raw in enumerate(questions):
            question = Question.model_validate({**raw, "difficulty": difficulty_by_position(i, len(questions))})
            store.add_bucket_question(bucket.id, question)
    logger.info(f"Seeded {len(DEFAULT_BUCKETS)} default question buckets")


def seed_challenges(db: Session) -> None:
    if db.scalar(select(func.count()).select_from(CodingChallenge)):
        return
    for challenge_def in DEFAULT_CHALLENGES:
        challenge = CodingChallenge(
            title=challenge_def["title"], description=challenge_def["description"], difficulty=challenge_def["difficulty"],
            time_limit=challenge_def["time_limit"], starter_code=challenge_def["starter_code"],
            solution_code=challenge_def["solution_code"], created_by="system",
        )
        db.add(challenge)
        db.flush()
        for i, (stdin, expected, hidden) in enumerate(challenge_def["test_cases"]):
            db.add(CodingTestCase(challenge_id=challenge.id, input=stdin, expected_output=expected, is_hidden=hidden, order_index=i))
    db.commit()
    logger.info(f"Seeded {len(DEFAULT_CHALLENGES)} default coding challenges")


def seed_defaults(db: Session) -> None:
    store = QuizStore(db)
    seed_admin(db)
    seed_quizzes(store)
    seed_buckets(store)
    seed_challenges(db)
