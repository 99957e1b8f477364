"""
api/routes/v1/key_dates.py -- Project key dates and the cross-project calendar.

Routes:
  GET    /api/v1/projects/{id}/key-dates          -- a project's key dates
  POST   /api/v1/projects/{id}/key-dates          -- add one
  PATCH  /api/v1/projects/{id}/key-dates/{kid}    -- update one
  DELETE /api/v1/projects/{id}/key-dates/{kid}    -- delete one
  GET    /api/v1/key-dates?start=&end=            -- calendar across all projects

All admin only. A PATCH is merged into the stored record and the result is
validated as a whole (KeyDateCreate), so a partial update cannot leave a
finish time before its start time.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import ValidationError

from api.models import DATE_PATTERN, KeyDateCreate, KeyDatePatch, KeyDateResponse
from api.routes.v1.common import fail, get_project_or_404
from auth.dependencies import require_admin
from auth.models import User
from review.models import KeyDate
from review.store import ReviewStore

router = APIRouter()


def _get_key_date_or_404(store: ReviewStore, project_id: int, key_date_id: int) -> KeyDate:
    key_date = store.get_key_date(key_date_id)
    if key_date is None or key_date.project_id != project_id:
        fail(404, "not_found", "Key date not found.")
    return key_date


@router.get("/projects/{project_id}/key-dates", response_model=list[KeyDateResponse])
def list_key_dates(
    request: Request, project_id: int, current_user: User = Depends(require_admin)
) -> list[KeyDateResponse]:
    get_project_or_404(request, project_id)
    return [KeyDateResponse.from_key_date(k) for k in request.app.state.review.list_key_dates(project_id=project_id)]


@router.post("/projects/{project_id}/key-dates", response_model=KeyDateResponse, status_code=201)
def create_key_date(
    request: Request,
    project_id: int,
    body: KeyDateCreate,
    current_user: User = Depends(require_admin),
) -> KeyDateResponse:
    store: ReviewStore = request.app.state.review
    get_project_or_404(request, project_id)
    kid = store.create_key_date(KeyDate(project_id=project_id, **body.model_dump(mode="json")))
    return KeyDateResponse.from_key_date(store.get_key_date(kid))


@router.patch("/projects/{project_id}/key-dates/{key_date_id}", response_model=KeyDateResponse)
def update_key_date(
    request: Request,
    project_id: int,
    key_date_id: int,
    body: KeyDatePatch,
    current_user: User = Depends(require_admin),
) -> KeyDateResponse:
    store: ReviewStore = request.app.state.review
    current = _get_key_date_or_404(store, project_id, key_date_id)
    merged = {
        k: v for k, v in asdict(current).items() if k in KeyDateCreate.model_fields
    }
    merged.update(body.model_dump(exclude_unset=True, mode="json"))
    if merged.get("notes") is None:
        merged["notes"] = ""
    try:
        validated = KeyDateCreate(**merged)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "validation_error", "message": "Request validation failed.", "detail": str(exc.errors())},
        ) from exc
    store.update_key_date(key_date_id, **validated.model_dump(mode="json"))
    return KeyDateResponse.from_key_date(store.get_key_date(key_date_id))


@router.delete("/projects/{project_id}/key-dates/{key_date_id}", status_code=204)
def delete_key_date(
    request: Request,
    project_id: int,
    key_date_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    store: ReviewStore = request.app.state.review
    _get_key_date_or_404(store, project_id, key_date_id)
    store.delete_key_date(key_date_id)
    return Response(status_code=204)


@router.get("/key-dates", response_model=list[KeyDateResponse])
def calendar(
    request: Request,
    start: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    end: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    current_user: User = Depends(require_admin),
) -> list[KeyDateResponse]:
    """Key dates of every project in [start, end], chronological."""
    return [KeyDateResponse.from_key_date(k) for k in request.app.state.review.list_key_dates(start=start, end=end)]
