"""
Permissions domain — request orchestration.
"""
from __future__ import annotations

from app.accounts.persona import Persona, Principal
from app.permissions import engine
from app.permissions.schemas import EvaluateRequest, EvaluateResponse, EvaluateResult


def evaluate(
    principal: Principal | None, active: Persona | None, body: EvaluateRequest
) -> EvaluateResponse:
    results = []
    for check in body.checks:
        decision = engine.evaluate(check.action, principal, active, check.resource)
        results.append(
            EvaluateResult(action=check.action, allowed=decision.allowed, reason=decision.reason)
        )
    return EvaluateResponse(results=results)
