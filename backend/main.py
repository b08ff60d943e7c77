import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Dict, Any

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from attempts import AttemptService
from auth import authenticate, get_current_user, require_roles, seed_super_admin, token_for
from config import CORS_ORIGINS, HOST, PORT
from database import ensure_indexes, get_db, utcnow
from enrollment import EnrollmentLedger
from errors import DATA_INTEGRITY, QuizError
from logging_config import configure_logging
from question_bank import QuestionBank
from quizzes import QuizStore
from schemas import (
    ADMIN_ROLES,
    AttemptHistory,
    AttemptSummary,
    AttemptView,
    AvailableQuiz,
    EnrollRequest,
    EnrolledStudent,
    EnrollResult,
    Question,
    QuestionCreate,
    QuizCreate,
    QuizDefinition,
    RecordAnswerRequest,
    Role,
    StartResult,
    StatusUpdate,
    SubmitRequest,
    SubmitResult,
)
from stats_cache import admin_stats, stats_cache, user_stats

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    ensure_indexes()
    seed_super_admin()
    yield


app = FastAPI(title="Quiz Attempt Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

admin_only = require_roles(*ADMIN_ROLES)
student_only = require_roles(Role.STUDENT.value)


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
    if exc.category == DATA_INTEGRITY:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def attempt_service() -> AttemptService:
    return AttemptService(get_db())


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: str
    password: str


@app.get("/")
def root():
    return {"message": "Backend OK", "time": utcnow().isoformat()}


@app.post("/auth/login", response_model=Token)
def login(payload: LoginRequest):
    user = authenticate(payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return Token(access_token=token_for(user))


@app.post("/auth/logout")
def logout(user=Depends(get_current_user)):
    stats_cache.invalidate(user["uid"])
    return {"status": "logged out"}


# Administration: question bank, quiz definitions, enrollments

@app.post("/questions", response_model=Question)
def create_question(data: QuestionCreate, user=Depends(admin_only)):
    return QuestionBank(get_db()).add_question(data)


@app.post("/quizzes", response_model=QuizDefinition)
def create_quiz(data: QuizCreate, user=Depends(admin_only)):
    return QuizStore(get_db()).create_quiz(data, created_by=user["uid"])


@app.get("/quizzes/{quiz_id}", response_model=QuizDefinition)
def get_quiz(quiz_id: str, user=Depends(admin_only)):
    return QuizStore(get_db()).get_quiz(quiz_id)


@app.patch("/quizzes/{quiz_id}/status", response_model=QuizDefinition)
def update_quiz_status(quiz_id: str, data: StatusUpdate, user=Depends(admin_only)):
    return QuizStore(get_db()).set_status(quiz_id, data.status)


@app.get("/quizzes/{quiz_id}/enrollments", response_model=List[EnrolledStudent])
def list_enrollments(quiz_id: str, user=Depends(admin_only)):
    return EnrollmentLedger(get_db()).enrollment_report(quiz_id)


@app.post("/quizzes/{quiz_id}/enrollments", response_model=EnrollResult)
def enroll_students(quiz_id: str, data: EnrollRequest, user=Depends(admin_only)):
    if not data.studentIds:
        raise HTTPException(status_code=400, detail="Student IDs are required")
    created, existing = EnrollmentLedger(get_db()).enroll(quiz_id, data.studentIds)
    if created == 0:
        raise HTTPException(status_code=400, detail="All selected students are already enrolled")
    return EnrollResult(message="Students enrolled successfully", enrolledCount=created, alreadyEnrolled=existing)


@app.delete("/quizzes/{quiz_id}/enrollments/{student_id}")
def remove_student(quiz_id: str, student_id: str, user=Depends(admin_only)):
    EnrollmentLedger(get_db()).unenroll(quiz_id, student_id)
    return {"message": "Student removed successfully"}


# Taking quizzes

@app.get("/me/quizzes", response_model=List[AvailableQuiz])
def my_quizzes(user=Depends(student_only)):
    return attempt_service().list_available_quizzes(user["uid"])


@app.post("/quizzes/{quiz_id}/start", response_model=StartResult)
def start_attempt(quiz_id: str, user=Depends(student_only)):
    return attempt_service().start_attempt(quiz_id, user["uid"])


@app.get("/quizzes/{quiz_id}/attempt", response_model=AttemptView)
def active_attempt(quiz_id: str, user=Depends(student_only)):
    return attempt_service().get_active_attempt_view(quiz_id, user["uid"])


@app.get("/quizzes/{quiz_id}/attempts", response_model=AttemptHistory)
def attempt_history(quiz_id: str, user=Depends(student_only)):
    return attempt_service().list_attempts(quiz_id, user["uid"])


@app.put("/attempts/{attempt_id}/answers/{question_id}")
def record_answer(attempt_id: str, question_id: str, data: RecordAnswerRequest, user=Depends(student_only)):
    attempt_service().record_answer(attempt_id, user["uid"], question_id, data.answer)
    return {"status": "saved"}


@app.post("/attempts/{attempt_id}/submit", response_model=SubmitResult)
def submit_attempt(attempt_id: str, data: Optional[SubmitRequest] = None, user=Depends(student_only)):
    answers: Dict[str, Any] = data.answers if data else {}
    result = attempt_service().submit(attempt_id, user["uid"], answers)
    stats_cache.invalidate(user["uid"])
    return result


@app.get("/attempts/{attempt_id}", response_model=AttemptSummary)
def get_attempt(attempt_id: str, user=Depends(student_only)):
    return attempt_service().get_attempt(attempt_id, user["uid"])


@app.get("/dashboard/stats")
def dashboard_stats(user=Depends(get_current_user)):
    db = get_db()
    if user["role"] in ADMIN_ROLES:
        return admin_stats(db)
    return stats_cache.get_or_load(user["uid"], lambda: user_stats(db, user["uid"]))


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT, log_level="info")
