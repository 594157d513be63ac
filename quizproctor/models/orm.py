from datetime import datetime, timezone
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import BigInteger, Integer, String, Text, Boolean, ForeignKey, DateTime, UniqueConstraint, Index

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class Base(DeclarativeBase): pass

# ========== Quiz content ==========

class Quiz(Base):
    __tablename__ = "quizzes"
    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    questions: Mapped[str] = mapped_column(Text, default="[]")  # JSON, canonical inline shape
    points_per_question: Mapped[int] = mapped_column(Integer, default=1)
    is_custom: Mapped[bool] = mapped_column(Boolean, default=True)
    randomization_settings: Mapped[str | None] = mapped_column(Text, nullable=True)
    proctoring_settings: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class QuestionBucket(Base):
    __tablename__ = "question_buckets"
    __table_args__ = (UniqueConstraint("name", "subject", name="uq_bucket_name_subject"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    subject: Mapped[str] = mapped_column(String(100), index=True)
    total_questions: Mapped[int] = mapped_column(Integer, default=0)
    easy_count: Mapped[int] = mapped_column(Integer, default=0)
    medium_count: Mapped[int] = mapped_column(Integer, default=0)
    hard_count: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class BucketQuestion(Base):
    __tablename__ = "questions"
    __table_args__ = (Index("idx_questions_bucket_difficulty", "bucket_id", "difficulty", "is_active"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bucket_id: Mapped[int] = mapped_column(Integer, ForeignKey("question_buckets.id", ondelete="CASCADE"))
    question_text: Mapped[str] = mapped_column(Text)
    options: Mapped[str] = mapped_column(Text)  # JSON list
    correct_answer: Mapped[int] = mapped_column(Integer)
    difficulty: Mapped[str] = mapped_column(String(10))
    points: Mapped[int] = mapped_column(Integer, default=1)
    explanation: Mapped[str] = mapped_column(Text, default="")
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON list
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class QuizBucketMapping(Base):
    __tablename__ = "quiz_bucket_mappings"
    __table_args__ = (UniqueConstraint("quiz_id", "bucket_id", name="uq_quiz_bucket"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quiz_id: Mapped[str] = mapped_column(String(50), ForeignKey("quizzes.id", ondelete="CASCADE"), index=True)
    bucket_id: Mapped[int] = mapped_column(Integer, ForeignKey("question_buckets.id", ondelete="CASCADE"))
    easy_count: Mapped[int] = mapped_column(Integer, default=0)
    medium_count: Mapped[int] = mapped_column(Integer, default=0)
    hard_count: Mapped[int] = mapped_column(Integer, default=0)
    total_questions: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

# ========== Proctoring ==========

class ProctoringSession(Base):
    __tablename__ = "proctoring_sessions"
    __table_args__ = (
        Index("idx_ps_status", "status"),
        Index("idx_ps_assessment", "assessment_id"),
        Index("idx_ps_user_email", "user_email"),
        Index("idx_ps_start_time", "start_time"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(100), unique=True)
    user_email: Mapped[str] = mapped_column(String(255))
    user_name: Mapped[str] = mapped_column(String(255))
    assessment_id: Mapped[str] = mapped_column(String(50))
    level: Mapped[str] = mapped_column(String(10), default="basic")
    strict_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String(12), default="active")
    settings: Mapped[str] = mapped_column(Text, default="{}")  # JSON
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    violation_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class ProctoringViolation(Base):
    __tablename__ = "proctoring_violations"
    __table_args__ = (
        Index("idx_pv_session", "session_id"),
        Index("idx_pv_type", "violation_type"),
        Index("idx_pv_timestamp", "timestamp"),
    )
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(100), ForeignKey("proctoring_sessions.session_id", ondelete="CASCADE"))
    violation_type: Mapped[str] = mapped_column(String(32))
    severity: Mapped[str] = mapped_column(String(10), default="medium")
    description: Mapped[str] = mapped_column(Text, default="")
    evidence: Mapped[str] = mapped_column(Text, default="{}")  # JSON
    auto_flagged: Mapped[bool] = mapped_column(Boolean, default=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

# ========== Administration & results ==========

class AdminUser(Base):
    __tablename__ = "admin_users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

class AssessmentResult(Base):
    __tablename__ = "assessment_results"
    __table_args__ = (Index("idx_ar_email", "email"), Index("idx_ar_track", "track_id"), Index("idx_ar_completion", "completion_time"))
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255))
    assessment_track: Mapped[str] = mapped_column(String(255))
    track_id: Mapped[str] = mapped_column(String(50))
    login_date_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completion_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    max_score: Mapped[int] = mapped_column(Integer)
    achieved_score: Mapped[int] = mapped_column(Integer)
    total_questions: Mapped[int] = mapped_column(Integer)
    duration_seconds: Mapped[int] = mapped_column(Integer)
    answers: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

class QuizParticipant(Base):
    __tablename__ = "quiz_participants"
    __table_args__ = (UniqueConstraint("quiz_id", "email", name="uq_quiz_participant"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quiz_id: Mapped[str] = mapped_column(String(50), ForeignKey("quizzes.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), index=True)
    department: Mapped[str] = mapped_column(String(255), default="")
    access_token: Mapped[str] = mapped_column(String(64), unique=True)
    invited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    accessed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

# ========== Coding challenges ==========

class CodingChallenge(Base):
    __tablename__ = "coding_challenges"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text)
    difficulty: Mapped[str] = mapped_column(String(10), default="easy")
    time_limit: Mapped[int] = mapped_column(Integer, default=30)  # minutes
    starter_code: Mapped[str] = mapped_column(Text)
    solution_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

class CodingTestCase(Base):
    __tablename__ = "coding_test_cases"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_id: Mapped[int] = mapped_column(Integer, ForeignKey("coding_challenges.id", ondelete="CASCADE"), index=True)
    input: Mapped[str] = mapped_column(Text)
    expected_output: Mapped[str] = mapped_column(Text)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0)

class CodingSubmission(Base):
    __tablename__ = "coding_submissions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_id: Mapped[int] = mapped_column(Integer, ForeignKey("coding_challenges.id", ondelete="CASCADE"), index=True)
    user_name: Mapped[str] = mapped_column(String(255))
    code: Mapped[str] = mapped_column(Text)
    score: Mapped[int] = mapped_column(Integer, default=0)
    passed_tests: Mapped[int] = mapped_column(Integer, default=0)
    total_tests: Mapped[int] = mapped_column(Integer, default=0)
    time_spent: Mapped[int] = mapped_column(Integer, default=0)
    results: Mapped[str] = mapped_column(Text, default="[]")  # JSON
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
