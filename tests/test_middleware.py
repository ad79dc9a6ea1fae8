"""
Tests for splitbill/core/middleware.py

Covers:
- mask_path_pii: phone numbers in URL paths
- CorrelationIdMiddleware and RequestLoggingMiddleware
- SecurityHeadersMiddleware
- Exception handlers
"""
from unittest.mock import AsyncMock

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse, JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from splitbill.core.exceptions import (
    AppException,
    BillNotFoundError,
    ErrorCode,
    ValidationException,
)
from splitbill.core.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    app_exception_handler,
    generic_exception_handler,
    mask_path_pii,
)


def _hello(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


def _error(request: Request) -> PlainTextResponse:
    raise ValueError("boom")


def _build_app(*, middlewares: list[tuple] | None = None) -> Starlette:
    """Minimal Starlette app with the given middleware"""
    app = Starlette(routes=[
        Route("/test", _hello),
        Route("/api/bills/member/{phone}", _hello),
        Route("/error", _error),
    ])
    for mw_class, kwargs in middlewares or []:
        app.add_middleware(mw_class, **kwargs)
    return app


class TestMaskPathPii:

    @pytest.mark.unit
    def test_masks_international_phone(self) -> None:
        masked = mask_path_pii("/api/bills/creator/+255712345678")
        assert masked == "/api/bills/creator/+25571****678"

    @pytest.mark.unit
    def test_masks_local_phone(self) -> None:
        masked = mask_path_pii("/api/bills/member/0712345678")
        assert "2345" not in masked
        assert "****" in masked

    @pytest.mark.unit
    def test_no_phone_no_change(self) -> None:
        assert mask_path_pii("/api/ussd/health") == "/api/ussd/health"

    @pytest.mark.unit
    def test_bill_ids_not_masked(self) -> None:
        assert mask_path_pii("/api/bills/12345") == "/api/bills/12345"


class TestCorrelationIdMiddleware:

    @pytest.mark.unit
    def test_generates_correlation_id_when_missing(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test")

        assert response.status_code == 200
        assert len(response.headers["x-correlation-id"]) == 8

    @pytest.mark.unit
    def test_preserves_existing_correlation_id(self) -> None:
        app = _build_app(middlewares=[(CorrelationIdMiddleware, {})])
        with TestClient(app) as client:
            response = client.get("/test", headers={"X-Correlation-ID": "given-id"})

        assert response.headers["x-correlation-id"] == "given-id"


class TestRequestLoggingMiddleware:

    @pytest.mark.unit
    def test_logs_masked_path(self, caplog) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with caplog.at_level("INFO", logger="splitbill.core.middleware"):
            with TestClient(app) as client:
                client.get("/api/bills/member/+255712345678")

        messages = " ".join(r.getMessage() for r in caplog.records)
        assert "Request completed" in messages
        assert "+255712345678" not in messages

    @pytest.mark.unit
    def test_failure_is_reraised(self) -> None:
        app = _build_app(middlewares=[(RequestLoggingMiddleware, {})])
        with TestClient(app, raise_server_exceptions=True) as client:
            with pytest.raises(ValueError):
                client.get("/error")


class TestSecurityHeadersMiddleware:

    @pytest.mark.unit
    def test_production_headers(self) -> None:
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": False})])
        with TestClient(app) as client:
            response = client.get("/test")

        assert response.headers["x-content-type-options"] == "nosniff"
        assert "max-age" in response.headers["strict-transport-security"]

    @pytest.mark.unit
    def test_debug_skips_hsts(self) -> None:
        app = _build_app(middlewares=[(SecurityHeadersMiddleware, {"debug": True})])
        with TestClient(app) as client:
            response = client.get("/test")

        assert response.headers["x-content-type-options"] == "nosniff"
        assert "strict-transport-security" not in response.headers


class TestExceptionHandlers:

    @pytest.mark.asyncio
    async def test_handles_app_exception(self) -> None:
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/bills/7"

        response = await app_exception_handler(mock_request, BillNotFoundError(7))

        assert isinstance(response, JSONResponse)
        assert response.status_code == 404
        assert ErrorCode.BILL_NOT_FOUND.value in response.body.decode()
        assert "x-correlation-id" in response.headers

    @pytest.mark.asyncio
    async def test_handles_validation_exception(self) -> None:
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/bills"

        exc = ValidationException(message="Invalid phone number", field="creatorPhone")
        response = await app_exception_handler(mock_request, exc)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_generic_handler_hides_details(self) -> None:
        mock_request = AsyncMock(spec=Request)
        mock_request.url.path = "/api/test"

        exc = RuntimeError("database connection failed on host 10.0.0.1")
        response = await generic_exception_handler(mock_request, exc)

        body = response.body.decode()
        assert response.status_code == 500
        assert "10.0.0.1" not in body
        assert "ERR_1000" in body

    @pytest.mark.unit
    def test_to_dict_shape(self) -> None:
        exc = AppException("nope", ErrorCode.NOT_FOUND, 404, {"id": 1})
        assert exc.to_dict() == {
            "error": {"code": "ERR_1002", "message": "nope", "details": {"id": 1}}
        }
