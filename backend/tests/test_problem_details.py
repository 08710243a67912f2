from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI
from fastapi.testclient import TestClient

from maintenance_core.domain_errors import (
    ConflictError,
    DataIntegrityError,
    DomainError,
    InvalidTransitionError,
    NotFoundError,
)
from maintenance_core.problem_details import build_problem_details_response, domain_error_handler


def test_problem_details_payload_contains_stable_code_and_rfc7807_fields() -> None:
    response = build_problem_details_response(
        DomainError(
            code="PROBE_ERROR",
            http_status=409,
            message="probe failed",
            details={"probe": True},
        )
    )

    assert response.status_code == 409
    assert response.media_type == "application/problem+json"

    body = response.body.decode("utf-8")
    assert '"type":"https://api.maintenance.local/problems/probe_error"' in body
    assert '"title":"Conflict"' in body
    assert '"status":409' in body
    assert '"detail":"probe failed"' in body
    assert '"code":"PROBE_ERROR"' in body
    assert '"details":{"probe":true}' in body


def test_problem_details_omits_details_when_none() -> None:
    response = build_problem_details_response(NotFoundError("work_order"))

    body = response.body.decode("utf-8")
    assert response.status_code == 404
    assert '"code":"WORK_ORDER_NOT_FOUND"' in body
    assert '"detail":"Work order not found"' in body
    assert '"details"' not in body


def test_conflict_carries_active_work_order() -> None:
    active_id = uuid4()
    response = build_problem_details_response(ConflictError("active timer exists", active_id))

    body = response.body.decode("utf-8")
    assert response.status_code == 409
    assert f'"details":{{"activeWorkOrderId":"{active_id}"}}' in body


def test_fastapi_exception_handler_maps_domain_errors_to_problem_details() -> None:
    app = FastAPI()
    app.add_exception_handler(DomainError, domain_error_handler)

    @app.get("/transition")
    def _transition():
        raise InvalidTransitionError("open", "approve")

    @app.get("/integrity")
    def _integrity():
        raise DataIntegrityError("Multiple open time entries found for actor", details={"entryIds": []})

    client = TestClient(app)

    response = client.get("/transition")
    assert response.status_code == 409
    assert response.headers["content-type"].startswith("application/problem+json")
    payload = response.json()
    assert payload["code"] == "WORK_ORDER_INVALID_TRANSITION"
    assert payload["details"] == {"fromStatus": "open", "action": "approve"}

    response = client.get("/integrity")
    assert response.status_code == 500
    assert response.json()["code"] == "DATA_INTEGRITY_VIOLATION"
