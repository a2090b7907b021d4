"""Tests for the JSON error envelope and exception handlers.

Error responses share one shape:
{
    "success": false,
    "message": "<human_readable>",
    "error": {"code": "<stable_code>", "message": "<human_readable>", "details": ...},
    "request_id": "<uuid>"
}
"""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import ValidationError

from sitegate.api.error_handling import (
    _STATUS_TO_CODE,
    _error_code_for_status,
    _error_response,
    register_exception_handlers,
)
from sitegate.api.schemas import Envelope, ErrorBody
from sitegate.service.errors import NotFoundError, ServiceError, ServiceUnavailableError
from sitegate.storage.errors import ConstraintViolation, StoreError


def _all_subclasses(cls):
    found = []
    for sub in cls.__subclasses__():
        found.append(sub)
        found.extend(_all_subclasses(sub))
    return found


class TestErrorBody:
    def test_required_fields(self):
        error = ErrorBody(code="unauthorized", message="Invalid credentials")
        assert error.details is None

    def test_missing_message_raises(self):
        with pytest.raises(ValidationError):
            ErrorBody(code="server_error")

    def test_unknown_code_rejected(self):
        """Only stable codes are allowed on the wire."""
        with pytest.raises(ValidationError):
            ErrorBody(code="teapot", message="short and stout")


class TestEnvelope:
    def test_success_envelope(self):
        envelope = Envelope(success=True, data={"maintenanceMode": False})
        assert envelope.error is None
        assert len(envelope.request_id) == 36

    def test_error_serialization(self):
        envelope = Envelope(
            success=False,
            message="Too many requests",
            error=ErrorBody(code="rate_limited", message="Too many requests", details={"retry_after": 60}),
            request_id="req-1",
        )
        dumped = envelope.model_dump()
        assert dumped["success"] is False
        assert dumped["error"]["details"]["retry_after"] == 60
        assert dumped["request_id"] == "req-1"
        assert dumped["data"] is None


class TestErrorCodeMapping:
    @pytest.mark.parametrize(
        "status, code",
        [
            (400, "validation_error"),
            (401, "unauthorized"),
            (403, "forbidden"),
            (404, "not_found"),
            (409, "conflict"),
            (429, "rate_limited"),
            (500, "server_error"),
            (503, "service_unavailable"),
        ],
    )
    def test_known_statuses(self, status, code):
        assert _error_code_for_status(status) == code

    def test_unknown_status_defaults_to_server_error(self):
        assert _error_code_for_status(418) == "server_error"

    def test_mapping_only_uses_valid_codes(self):
        for code in _STATUS_TO_CODE.values():
            ErrorBody(code=code, message="ok")

    def test_service_errors_agree_with_status_mapping(self):
        documented = ServiceError.__doc__
        for cls in (ServiceError, *_all_subclasses(ServiceError)):
            assert _error_code_for_status(cls.status_code) == cls.error_code
            assert cls.error_code in documented
        for code in _STATUS_TO_CODE.values():
            if code in documented:
                assert any(
                    sub.error_code == code
                    for sub in (ServiceError, *_all_subclasses(ServiceError))
                )


class TestErrorResponseFactory:
    def test_basic(self):
        response = _error_response(401, "Invalid credentials")
        data = json.loads(response.body.decode())
        assert response.status_code == 401
        assert data["success"] is False
        assert data["message"] == "Invalid credentials"
        assert data["error"]["code"] == "unauthorized"
        assert "request_id" in data

    def test_list_details(self):
        response = _error_response(400, "Multiple errors", details=[{"field": "a"}, {"field": "b"}])
        data = json.loads(response.body.decode())
        assert len(data["error"]["details"]) == 2


def _app_raising(exc):
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise exc

    return TestClient(app, raise_server_exceptions=False)


class TestExceptionHandlers:
    def test_service_error(self):
        response = _app_raising(NotFoundError("listing not found")).get("/boom")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_service_unavailable(self):
        response = _app_raising(ServiceUnavailableError("down for upgrades")).get("/boom")
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "service_unavailable"

    def test_store_error_maps_to_503(self):
        response = _app_raising(StoreError("connection refused")).get("/boom")
        assert response.status_code == 503
        body = response.json()
        assert body["error"]["code"] == "service_unavailable"
        assert "connection refused" not in body["message"]

    def test_constraint_violation_maps_to_409(self):
        response = _app_raising(ConstraintViolation("email already exists")).get("/boom")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "conflict"

    def test_uncaught_exception(self):
        response = _app_raising(RuntimeError("kaboom")).get("/boom")
        assert response.status_code == 500
        body = response.json()
        assert body["error"]["code"] == "server_error"
        assert "kaboom" not in json.dumps(body)
