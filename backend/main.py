"""
Sekolah Dashboard — rules engine for grades, attendance, assignments and gamification.
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.grading import get_all_status_thresholds
from core.levels import DEFAULT_THRESHOLDS
from core.logging_config import init_logging, init_request_logging

# Load environment
load_dotenv()
init_logging()

from routes.grades import router as grades_router  # noqa: E402
from routes.gamification import router as gamification_router  # noqa: E402
from routes.attendance import router as attendance_router  # noqa: E402
from routes.assignments import router as assignments_router  # noqa: E402
from routes.reports import router as reports_router  # noqa: E402

logger = logging.getLogger(__name__)

SCHOOL_NAME = os.getenv("SCHOOL_NAME", "My School")
SHEET_API_CONFIGURED = bool(os.getenv("SHEET_API_URL", "").strip())
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

app = FastAPI(
    title="Sekolah Dashboard API",
    description=(
        "Grade classification, level resolution, gamification reconciliation, "
        "attendance aggregation, assignment status and spreadsheet exports."
    ),
    version="1.0.0",
)

# CORS — allow the React dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
init_request_logging(app)

# Register route modules
app.include_router(grades_router, prefix="/api/grades", tags=["Grades"])
app.include_router(gamification_router, prefix="/api/gamification", tags=["Gamification"])
app.include_router(attendance_router, prefix="/api/attendance", tags=["Attendance"])
app.include_router(assignments_router, prefix="/api/assignments", tags=["Assignments"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])

if not SHEET_API_CONFIGURED:
    logger.warning("SHEET_API_URL is not set; live endpoints will answer 502")


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": SCHOOL_NAME,
        "sheet_api_configured": SHEET_API_CONFIGURED,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "school_name": SCHOOL_NAME,
        "status_thresholds": get_all_status_thresholds(),
        "default_level_thresholds": list(DEFAULT_THRESHOLDS),
    }
