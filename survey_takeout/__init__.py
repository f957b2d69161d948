"""Survey takeout approval and score aggregation service.

Exposes the FastAPI application factory. Business logic lives in
`survey_takeout/logic/` and route handlers in `survey_takeout/routes/`.
"""

from __future__ import annotations

from survey_takeout.main import create_app

__all__ = ["create_app"]
