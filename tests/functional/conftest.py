from __future__ import annotations

"""Functional test bootstrap.

Points the service at a file-backed SQLite database under tmp/ before any
service module reads configuration, applies the packaged migrations once per
session and empties every table before each test. Seeding helpers are exposed
through the `seed` fixture; they go through the real submission path so rows
look exactly like production rows.
"""

import os
import pathlib
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

_ROOT = pathlib.Path(__file__).resolve().parents[2]
_DB_FILE = _ROOT / "tmp" / "functional_tests.db"
_DB_FILE.parent.mkdir(parents=True, exist_ok=True)
if _DB_FILE.exists():
    _DB_FILE.unlink()

# Use a file-backed SQLite DB to ensure persistence across connections
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
# Migrations are applied explicitly below, not by the app lifespan
os.environ["AUTO_APPLY_MIGRATIONS"] = "0"

_TABLES_IN_DELETE_ORDER = (
    "best_comments",
    "approval_history",
    "question_responses",
    "responses",
    "function_applications",
    "functions",
    "questions",
    "surveys",
)


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap():
    """Session-level bootstrap: apply migrations once for the shared DB."""
    from survey_takeout.db.base import get_engine
    from survey_takeout.db.migrations_runner import apply_migrations

    apply_migrations(get_engine(os.environ["TEST_DATABASE_URL"]))
    yield


@pytest.fixture(autouse=True)
def clean_tables(functional_sqlite_bootstrap, monkeypatch):
    from sqlalchemy import text as sql_text

    from survey_takeout.db.base import get_engine

    for key in ("BULK_MAX_ITEMS", "BULK_MAX_WORKERS", "SCORE_DECIMAL_PLACES"):
        monkeypatch.delenv(key, raising=False)
    with get_engine().begin() as conn:
        for table in _TABLES_IN_DELETE_ORDER:
            conn.execute(sql_text(f"DELETE FROM {table}"))
    yield


class Seeder:
    """Creates surveys, functions and responses for a test."""

    def survey(
        self,
        survey_id: str = "s1",
        questions: Sequence[Tuple[str, str]] = (("q1", "Rating"),),
        duplicate_prevention: bool = True,
        mandatory: Iterable[str] = (),
        target_score: Optional[float] = None,
    ) -> str:
        from survey_takeout.db.base import unit_of_work
        from survey_takeout.logic import repository_surveys as surveys

        required = set(mandatory)
        with unit_of_work("seed_survey") as conn:
            surveys.create_survey(conn, survey_id, f"Survey {survey_id}", duplicate_prevention, target_score)
            for order, (qid, kind) in enumerate(questions):
                surveys.add_question(
                    conn, survey_id, qid, kind, prompt_text=f"Prompt {qid}", display_order=order, is_mandatory=qid in required
                )
        return survey_id

    def function(self, function_id: str, applications: Iterable[str], it_lead: Optional[str] = None) -> str:
        from survey_takeout.db.base import unit_of_work
        from survey_takeout.logic import repository_surveys as surveys

        with unit_of_work("seed_function") as conn:
            surveys.create_function(conn, function_id, f"Function {function_id}", it_lead)
            for app in applications:
                surveys.map_function_application(conn, function_id, app)
        return function_id

    def respond(
        self,
        survey_id: str,
        email: str,
        answers: Dict[str, dict],
        applications: Sequence[str] = ("app-1",),
        name: str = "Respondent",
        department_id: Optional[str] = "dept-1",
    ) -> List[str]:
        from survey_takeout.logic.submission import submit_response
        from survey_takeout.models.response_types import SubmitResponseRequest

        request = SubmitResponseRequest(
            respondent={"name": name, "email": email, "department_id": department_id},
            application_ids=list(applications),
            answers=[{"question_id": qid, "value": value} for qid, value in answers.items()],
        )
        return submit_response(survey_id, request).response_ids

    def ratings(
        self,
        survey_id: str,
        question_id: str,
        scores: Sequence[Optional[float]],
        application: str = "app-1",
        prefix: str = "user",
    ) -> List[str]:
        """One response per score, each from a distinct respondent."""
        rids: List[str] = []
        for i, score in enumerate(scores):
            value = {} if score is None else {"numeric_value": score}
            rids.extend(self.respond(survey_id, f"{prefix}{i}@example.com", {question_id: value}, applications=[application]))
        return rids


@pytest.fixture
def seed() -> Seeder:
    return Seeder()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from survey_takeout.main import create_app

    with TestClient(create_app()) as c:
        yield c
