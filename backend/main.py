"""
FastAPI backend for the sales intelligence engine.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.middleware.auth import FakeAuthMiddleware
from backend.routes.activities import router as activities_router
from backend.routes.campaigns import router as campaigns_router
from backend.routes.jobs import router as jobs_router
from backend.routes.leads import router as leads_router
from backend.routes.scores import router as scores_router
from backend.routes.settings import router as settings_router
from backend.routes.stages import router as stages_router
from backend.services.job_worker import start_worker, stop_worker
from sales_intel.config import configure_logging
from sales_intel.db import init_db
from sales_intel.errors import IntelError, http_status, user_message

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    start_worker()
    yield
    stop_worker()


app = FastAPI(
    title="Sales Intelligence Engine API",
    description="Lead scoring, staged property research and outreach campaigns",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(FakeAuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IntelError)
async def intel_error_handler(request: Request, exc: IntelError):
    body = {"kind": exc.kind.value, "message": user_message(exc)}
    if exc.detail:
        body["detail"] = exc.detail
    return JSONResponse(status_code=http_status(exc.kind), content={"error": body})


app.include_router(settings_router)
app.include_router(leads_router)
app.include_router(stages_router)
app.include_router(activities_router)
app.include_router(scores_router)
app.include_router(campaigns_router)
app.include_router(jobs_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok"}
