from fastapi import APIRouter

from .endpoints import monitoring, exam_sessions, exams, violations, health

api_router = APIRouter()

api_router.include_router(monitoring.router, prefix="/monitoring", tags=["monitoring"])
api_router.include_router(exam_sessions.router, prefix="/exams", tags=["exam-sessions"])
api_router.include_router(exams.router, prefix="/exam", tags=["exam"])
api_router.include_router(violations.router, prefix="/violations", tags=["violations"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
