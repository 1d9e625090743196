"""HTTP API over the server-side question database."""
import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cbt_prep.ai import AIService
from cbt_prep.config import Settings, configure_logging
from cbt_prep.db import init_db
from cbt_prep.errors import CBTError
from cbt_prep.question_bank import QuestionBankClient, normalize_question
from cbt_prep.question_store import (
    get_all_subject_counts, get_questions, save_questions_batch,
)
from cbt_prep.seed import SUBJECTS

logger = logging.getLogger(__name__)

AI_BACKFILL_LIMIT = 10
GENERATE_LIMIT = 20


class GenerateRequest(BaseModel):
    subject: Optional[str] = None
    topic: Optional[str] = None
    count: int = Field(10, ge=1)


class SyncRequest(BaseModel):
    subject: Optional[str] = None
    count: int = Field(100, ge=1)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def fetch_bank_questions(bank, subject: str, count: int) -> list:
    """Bank questions ready for upsert; bank failures count as an empty result."""
    try:
        raw_items = await bank.fetch_many(subject, count)
    except CBTError as e:
        logger.error("question bank error for %s: %s", subject, e)
        return []
    return [normalize_question(raw, i, subject) for i, raw in enumerate(raw_items) if isinstance(raw, dict)]


def create_app(settings: Settings = None, bank=None, ai=None) -> FastAPI:
    settings = settings or Settings.from_env()
    init_db(settings.db_path)
    db_path = settings.db_path
    owns_bank = bank is None
    if bank is None:
        bank = QuestionBankClient(settings.aloc_api_url, settings.aloc_access_token, settings.http_timeout)
    if ai is None and settings.ai_configured:
        ai = AIService(settings, store=None)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("serving questions from %s", db_path)
        yield
        if owns_bank:
            await bank.aclose()

    app = FastAPI(title="CBT Prep API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CBTError)
    async def cbt_error_handler(request: Request, exc: CBTError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error(str(exc), 500)

    @app.exception_handler(sqlite3.Error)
    async def db_error_handler(request: Request, exc: sqlite3.Error):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error(str(exc), 500)

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "timestamp": int(time.time() * 1000)}

    @app.get("/api/questions")
    async def list_questions(subject: Optional[str] = None, count: int = Query(40, ge=1), topic: Optional[str] = None):
        if not subject:
            return _error("Subject is required", 400)
        questions = get_questions(db_path, subject, count, topic)

        if len(questions) < count:
            fetched = await fetch_bank_questions(bank, subject, count)
            if fetched:
                save_questions_batch(db_path, fetched)
                questions = get_questions(db_path, subject, count, topic)

        if len(questions) < count and ai is not None:
            needed = min(count - len(questions), AI_BACKFILL_LIMIT)
            try:
                generated = await ai.generate_questions(subject, topic, needed)
            except CBTError as e:
                logger.error("AI generation error for %s: %s", subject, e)
            else:
                save_questions_batch(db_path, generated)
                questions = get_questions(db_path, subject, count, topic)

        return {
            "data": [q.to_dict() for q in questions[:count]],
            "total": len(questions),
            "source": "database",
        }

    @app.post("/api/questions/generate")
    async def generate_questions(body: GenerateRequest):
        if not body.subject:
            return _error("Subject is required", 400)
        if ai is None:
            return _error("AI generation not available", 400)
        questions = await ai.generate_questions(body.subject, body.topic, min(body.count, GENERATE_LIMIT))
        save_questions_batch(db_path, questions)
        return {
            "data": [q.to_dict() for q in questions],
            "count": len(questions),
            "message": f"Generated {len(questions)} questions for {body.subject}",
        }

    @app.post("/api/questions/sync")
    async def sync_questions(body: SyncRequest):
        subjects = [body.subject] if body.subject else list(SUBJECTS)
        results = {}
        for subject in subjects:
            fetched = await fetch_bank_questions(bank, subject, body.count)
            saved = save_questions_batch(db_path, fetched) if fetched else []
            results[subject] = {"fetched": len(fetched), "saved": len(saved)}
        return {"message": "Sync completed", "results": results}

    @app.get("/api/stats")
    async def stats():
        counts = get_all_subject_counts(db_path)
        return {"subjects": counts, "total": sum(counts.values())}

    @app.get("/api/subjects")
    async def subjects():
        return [{"id": key, "name": name} for key, name in SUBJECTS.items()]

    return app


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
