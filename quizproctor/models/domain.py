"""Typed shapes for the JSON payloads stored alongside quizzes and sessions."""
import enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ProctoringLevel(str, enum.Enum):
    BASIC = "basic"
    STANDARD = "standard"
    ADVANCED = "advanced"


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"
    PAUSED = "paused"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.TERMINATED)


class ViolationType(str, enum.Enum):
    TAB_SWITCH = "tab_switch"
    WINDOW_BLUR = "window_blur"
    MULTIPLE_FACES = "multiple_faces"
    NO_FACE = "no_face"
    SUSPICIOUS_AUDIO = "suspicious_audio"
    RIGHT_CLICK = "right_click"
    COPY_PASTE = "copy_paste"
    FULLSCREEN_EXIT = "fullscreen_exit"
    BROWSER_DEV_TOOLS = "browser_dev_tools"
    EXTERNAL_MONITOR = "external_monitor"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Question(BaseModel):
    """A multiple-choice question in the canonical quiz shape.

    Stored and served with the keys ``question`` and ``correct``; bucket rows
    use different column names and are mapped by the assembly service.
    ``original_order`` is only set on delivered copies whose options were
    shuffled and is never persisted.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str = Field(alias="question", min_length=1)
    options: List[str] = Field(min_length=2)
    correct_index: int = Field(alias="correct", ge=0)
    difficulty: Difficulty = Difficulty.MEDIUM
    points: int = Field(default=1, ge=1)
    tags: List[str] = Field(default_factory=list)
    explanation: str = ""
    original_order: Optional[List[str]] = None

    @model_validator(mode="after")
    def _correct_within_options(self):
        if self.correct_index >= len(self.options):
            raise ValueError(f"correct index {self.correct_index} outside {len(self.options)} options")
        return self

    def to_stored(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude={"original_order"})


class RandomizationConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    randomize_questions: bool = Field(default=False, validation_alias=AliasChoices("randomize_questions", "randomizeQuestions"))
    randomize_options: bool = Field(default=False, validation_alias=AliasChoices("randomize_options", "randomizeOptions"))
    question_limit: Optional[int] = Field(default=None, validation_alias=AliasChoices("question_limit", "questionLimit"))

    @property
    def is_active(self) -> bool:
        return self.randomize_questions or self.randomize_options or bool(self.question_limit)


class RandomizationOverride(BaseModel):
    """Per-request overrides; ``None`` means fall back to the stored value."""

    randomize_questions: Optional[bool] = None
    randomize_options: Optional[bool] = None
    question_limit: Optional[int] = None


class ProctoringConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    level: ProctoringLevel = ProctoringLevel.BASIC
    strict_mode: bool = Field(default=False, validation_alias=AliasChoices("strict_mode", "strictMode"))


class Evidence(BaseModel):
    """Client-supplied evidence for a violation; unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    kind: str = "client_report"
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    detail: Optional[str] = None
