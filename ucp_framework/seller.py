"""
UCP Checkout Router Factory.

`create_checkout_router()` exposes a `CheckoutSessionManager` as the five
UCP checkout endpoints on a FastAPI APIRouter.

Usage:
    manager = CheckoutSessionManager(catalog, orders, sessions, idempotency)
    app.include_router(create_checkout_router(manager))

Protocol diagnostics travel inside the session body with HTTP 200/201.
Unknown session ids answer 404 with the not-found body, and fatal engine
errors (`UCPCheckoutError`) answer with a structured error carrying the
error's own code: 409 for a reused idempotency key, 500 otherwise.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from fastapi import APIRouter, Header, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ucp_framework.checkout import CheckoutResult, CheckoutSessionManager
from ucp_framework.errors import UCPCheckoutError
from ucp_framework.models import (
    CheckoutCompleteRequest,
    CheckoutCreateRequest,
    CheckoutNotFoundResponse,
    CheckoutResponse,
    CheckoutUpdateRequest,
    UCPError,
    UCPErrorResponse,
)

logger = logging.getLogger(__name__)

RESPONSES = {
    404: {"model": CheckoutNotFoundResponse},
    409: {"model": UCPErrorResponse},
    500: {"model": UCPErrorResponse},
}

UPDATE_FIELDS = frozenset(CheckoutUpdateRequest.model_fields)


def _extra_fields(body: BaseModel) -> list[str]:
    return list(body.model_extra or {})


def _apply_common_response_headers(response: Response, idempotency_key: Optional[str], request_id: Optional[str]) -> None:
    if idempotency_key:
        response.headers["Idempotency-Key"] = idempotency_key
    if request_id:
        response.headers["Request-Id"] = request_id


def _error_response(
    error: UCPCheckoutError,
    idempotency_key: Optional[str],
    request_id: Optional[str],
) -> JSONResponse:
    body = UCPErrorResponse(
        error=UCPError(type=error.error_type, code=error.code, message=str(error), param=error.param)
    )
    response = JSONResponse(status_code=error.status_code, content=body.model_dump(exclude_none=True))
    _apply_common_response_headers(response, idempotency_key, request_id)
    return response


def _result_response(
    result: CheckoutResult,
    idempotency_key: Optional[str],
    request_id: Optional[str],
    status_code: int = 200,
) -> JSONResponse:
    if isinstance(result, CheckoutNotFoundResponse):
        status_code = 404
    response = JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json", exclude_none=True),
    )
    _apply_common_response_headers(response, idempotency_key, request_id)
    return response


def create_checkout_router(manager: CheckoutSessionManager, prefix: str = "") -> APIRouter:
    """
    Create a FastAPI APIRouter with the UCP checkout endpoints wired to
    the given manager.
    """
    router = APIRouter(prefix=prefix, tags=["UCP Checkout"])
    response_model = Union[CheckoutResponse, CheckoutNotFoundResponse]

    @router.post("/checkout_sessions", status_code=201, response_model=CheckoutResponse, responses=RESPONSES)
    async def create_checkout_session(
        body: CheckoutCreateRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        request_id: Optional[str] = Header(None, alias="Request-Id"),
    ):
        try:
            result = await manager.create(
                buyer=body.buyer,
                line_items=body.line_items,
                payment=body.payment,
                currency=body.currency,
                unrecognized_fields=_extra_fields(body),
            )
        except UCPCheckoutError as e:
            logger.exception("Failed to create checkout session")
            return _error_response(e, idempotency_key, request_id)
        return _result_response(result, idempotency_key, request_id, status_code=201)

    @router.get("/checkout_sessions/{session_id}", response_model=response_model, responses=RESPONSES)
    async def get_checkout_session(
        session_id: str,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        request_id: Optional[str] = Header(None, alias="Request-Id"),
    ):
        try:
            result = await manager.get(session_id)
        except UCPCheckoutError as e:
            logger.exception("Failed to load checkout session %s", session_id)
            return _error_response(e, idempotency_key, request_id)
        return _result_response(result, idempotency_key, request_id)

    @router.post("/checkout_sessions/{session_id}", response_model=response_model, responses=RESPONSES)
    async def update_checkout_session(
        session_id: str,
        body: CheckoutUpdateRequest,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        request_id: Optional[str] = Header(None, alias="Request-Id"),
    ):
        # Only fields present in the body replace stored values.
        changes = {name: getattr(body, name) for name in body.model_fields_set if name in UPDATE_FIELDS}
        try:
            result = await manager.update(session_id, unrecognized_fields=_extra_fields(body), **changes)
        except UCPCheckoutError as e:
            logger.exception("Failed to update checkout session %s", session_id)
            return _error_response(e, idempotency_key, request_id)
        return _result_response(result, idempotency_key, request_id)

    @router.post("/checkout_sessions/{session_id}/complete", response_model=response_model, responses=RESPONSES)
    async def complete_checkout_session(
        session_id: str,
        body: Optional[CheckoutCompleteRequest] = None,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        request_id: Optional[str] = Header(None, alias="Request-Id"),
    ):
        try:
            result = await manager.complete(
                session_id,
                payment=body.payment if body else None,
                idempotency_key=idempotency_key,
                unrecognized_fields=_extra_fields(body) if body else (),
            )
        except UCPCheckoutError as e:
            logger.exception("Failed to complete checkout session %s", session_id)
            return _error_response(e, idempotency_key, request_id)
        return _result_response(result, idempotency_key, request_id)

    @router.post("/checkout_sessions/{session_id}/cancel", response_model=response_model, responses=RESPONSES)
    async def cancel_checkout_session(
        session_id: str,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        request_id: Optional[str] = Header(None, alias="Request-Id"),
    ):
        try:
            result = await manager.cancel(session_id, idempotency_key=idempotency_key)
        except UCPCheckoutError as e:
            logger.exception("Failed to cancel checkout session %s", session_id)
            return _error_response(e, idempotency_key, request_id)
        return _result_response(result, idempotency_key, request_id)

    return router
