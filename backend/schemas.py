from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    TEACHER = "teacher"
    STUDENT = "student"


ADMIN_ROLES = (Role.SUPERADMIN.value, Role.TEACHER.value)


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"


class Difficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class QuizStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class EnrollmentMode(str, Enum):
    OPEN = "OPEN"
    RESTRICTED = "RESTRICTED"


class AttemptStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"


# Users Collection Schema
class User(BaseModel):
    uid: str
    role: str  # "superadmin" | "teacher" | "student"
    email: str
    name: str


# Questions Collection Schema
class Question(BaseModel):
    id: str
    title: str
    content: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: List[str]
    correctAnswer: int  # zero-based index into options
    explanation: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM


class QuestionCreate(BaseModel):
    title: str
    content: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    # Legacy payloads send options as a JSON string and the answer as "0"
    options: Any = None
    correctAnswer: Any
    explanation: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM


# Quizzes Collection Schema
class QuizQuestion(BaseModel):
    questionId: str
    order: int
    points: float = 1.0


class QuizDefinition(BaseModel):
    id: str
    code: str
    title: str
    description: str = ""
    timeLimit: int  # minutes
    difficulty: Difficulty = Difficulty.MEDIUM
    status: QuizStatus = QuizStatus.DRAFT
    negativeMarking: bool = False
    negativePoints: float = 0.0
    randomOrder: bool = False
    maxAttempts: Optional[int] = None  # None means unlimited
    showAnswers: bool = False
    checkAnswerEnabled: bool = False
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    enrollmentMode: EnrollmentMode = EnrollmentMode.OPEN
    enrolledCount: int = 0
    questions: List[QuizQuestion] = []
    createdBy: Optional[str] = None


class QuizQuestionCreate(BaseModel):
    questionId: str
    order: Optional[int] = None
    points: float = 1.0


class QuizCreate(BaseModel):
    title: str
    description: str = ""
    timeLimit: int
    difficulty: Difficulty = Difficulty.MEDIUM
    status: QuizStatus = QuizStatus.DRAFT
    negativeMarking: bool = False
    negativePoints: float = 0.0
    randomOrder: bool = False
    maxAttempts: Optional[int] = None
    showAnswers: bool = False
    checkAnswerEnabled: bool = False
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    questions: List[QuizQuestionCreate] = []


# Enrollments Collection Schema
class Enrollment(BaseModel):
    quizId: str
    userId: str
    createdAt: Optional[datetime] = None


# Attempts Collection Schema
class Attempt(BaseModel):
    id: str
    quizId: str
    userId: str
    status: AttemptStatus
    startedAt: datetime
    submittedAt: Optional[datetime] = None
    totalPoints: float = 0
    score: Optional[float] = None
    timeTaken: Optional[int] = None  # seconds
    answers: Dict[str, str] = {}


# Attempt lifecycle payloads
class StartResult(BaseModel):
    attemptId: str
    resumed: bool = False
    message: str = "Quiz started successfully"


class QuestionView(BaseModel):
    id: str
    title: str
    content: str
    type: QuestionType
    options: List[str]
    difficulty: Difficulty
    order: int
    points: float
    correctAnswer: Optional[int] = None
    explanation: Optional[str] = None


class QuizView(BaseModel):
    id: str
    title: str
    description: str = ""
    timeLimit: int
    showAnswers: bool = False
    checkAnswerEnabled: bool = False
    negativeMarking: bool = False
    negativePoints: float = 0.0
    randomOrder: bool = False
    questions: List[QuestionView]


class AttemptView(BaseModel):
    attemptId: str
    quiz: QuizView
    timeRemaining: int  # seconds
    answers: Dict[str, str] = {}


class RecordAnswerRequest(BaseModel):
    answer: Any


class SubmitRequest(BaseModel):
    answers: Dict[str, Any] = {}


class SubmitResult(BaseModel):
    attemptId: str
    score: float
    totalPoints: float
    percentage: float
    timeTaken: int
    submittedAt: datetime


class AttemptSummary(BaseModel):
    id: str
    quizId: str
    status: AttemptStatus
    score: Optional[float] = None
    totalPoints: float = 0
    percentage: Optional[float] = None
    timeTaken: Optional[int] = None
    startedAt: datetime
    submittedAt: Optional[datetime] = None


class AttemptHistory(BaseModel):
    quizId: str
    title: str
    maxAttempts: Optional[int] = None
    userAttemptCount: int
    canTakeQuiz: bool
    hasActiveAttempt: bool
    attempts: List[AttemptSummary] = []
    activeAttempt: Optional[AttemptSummary] = None


class AvailableQuiz(BaseModel):
    id: str
    title: str
    description: str = ""
    timeLimit: int
    difficulty: Difficulty
    maxAttempts: Optional[int] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    questionCount: int
    attempts: int
    bestScore: Optional[float] = None
    lastAttemptDate: Optional[datetime] = None
    canAttempt: bool
    attemptStatus: str  # not_started | in_progress | completed | expired
    hasInProgress: bool


class EnrollRequest(BaseModel):
    studentIds: List[str]


class EnrollResult(BaseModel):
    message: str
    enrolledCount: int
    alreadyEnrolled: int


class AttemptBrief(BaseModel):
    id: str
    status: AttemptStatus
    score: Optional[float] = None
    startedAt: datetime
    submittedAt: Optional[datetime] = None


class EnrolledStudent(BaseModel):
    userId: str
    enrolledAt: Optional[datetime] = None
    attempts: int = 0
    completedAttempts: int = 0
    bestScore: Optional[float] = None
    lastAttempt: Optional[AttemptBrief] = None


class StatusUpdate(BaseModel):
    status: QuizStatus
