"""APIRouter registration for the takeout approval service."""

from __future__ import annotations

from fastapi import APIRouter

from survey_takeout.routes.best_comments import router as best_comments_router
from survey_takeout.routes.reports import router as reports_router
from survey_takeout.routes.responses import router as responses_router
from survey_takeout.routes.takeouts import router as takeouts_router

api_router = APIRouter()
api_router.include_router(responses_router, tags=["Responses"])
api_router.include_router(takeouts_router, tags=["Takeouts"])
api_router.include_router(best_comments_router, tags=["BestComments"])
api_router.include_router(reports_router, tags=["Reports"])

__all__ = ["api_router"]
