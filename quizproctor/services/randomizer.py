import random
from typing import List, Optional, Sequence, TypeVar
from quizproctor.models.domain import Question

T = TypeVar("T")

_default_rng = random.Random()

def fisher_yates(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Uniform shuffle into a new list; the input is left untouched."""
    rng = rng or _default_rng
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randint(0, i)
        out[i], out[j] = out[j], out[i]
    return out

def shuffle_options(question: Question, rng: Optional[random.Random] = None) -> Question:
    # raw stored entries that failed validation are delivered as they are
    if not isinstance(question, Question):
        return question
    options = question.options
    if not isinstance(options, list) or not options or not (0 <= question.correct_index < len(options)):
        return question
    order = fisher_yates(range(len(options)), rng)
    shuffled = [options[i] for i in order]
    return question.model_copy(update={
        "options": shuffled,
        "correct_index": order.index(question.correct_index),
        "original_order": list(options),
    })

def randomize_quiz(questions: Sequence[Question], randomize_questions: bool = False, randomize_options: bool = False,
                   question_limit: Optional[int] = None, rng: Optional[random.Random] = None) -> List[Question]:
    """Derive a delivery variant of ``questions``.

    Options are shuffled per question, then the question order, then the
    result is cut to ``question_limit``. Without question shuffling the limit
    is a plain prefix: the first N questions as authored, not a random subset.
    """
    out = list(questions)
    if randomize_options:
        out = [shuffle_options(q, rng) for q in out]
    if randomize_questions:
        out = fisher_yates(out, rng)
    if question_limit and 0 < question_limit < len(out):
        out = out[:question_limit]
    return out
