"""
Permissions domain — routes.

  POST /permissions/evaluate   Batch of (action, resource metadata) checks for
                               the active persona.  Anonymous callers get
                               denials, not a 401.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.accounts.dependencies import get_active_persona_optional, get_principal_optional
from app.accounts.persona import Persona, Principal
from app.permissions import controller as ctrl
from app.permissions.schemas import EvaluateRequest, EvaluateResponse

router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.post(
    "/evaluate",
    response_model=EvaluateResponse,
    summary="Evaluate permission checks for the active persona",
)
async def evaluate(
    body: EvaluateRequest,
    principal: Principal | None = Depends(get_principal_optional),
    active: Persona | None = Depends(get_active_persona_optional),
) -> EvaluateResponse:
    return ctrl.evaluate(principal, active, body)
