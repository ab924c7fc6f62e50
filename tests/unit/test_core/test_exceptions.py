"""Tests for core exceptions."""

from uuid import uuid4

from chat_service.core import exceptions as exc


def test_app_exception_defaults_title() -> None:
    error = exc.AppException(status_code=400, detail="bad")
    assert error.title == "Bad Request"
    assert error.type == "about:blank"
    assert error.extra == {}


def test_not_found_exception_fields() -> None:
    error = exc.NotFoundException(detail="missing")
    assert error.status_code == 404
    assert error.title == "Not Found"


def test_authentication_error_is_unauthorized() -> None:
    error = exc.AuthenticationError("Token has expired")
    assert error.status_code == 401
    assert error.type == "authentication-failed"
    assert error.detail == "Token has expired"


def test_not_participant_error_records_ids() -> None:
    conversation_id, user_id = uuid4(), uuid4()
    error = exc.NotParticipantError(conversation_id, user_id, temp_id="t-1")

    assert error.status_code == 403
    assert error.type == "not-participant"
    assert error.extra == {
        "conversation_id": str(conversation_id),
        "user_id": str(user_id),
        "temp_id": "t-1",
    }


def test_invalid_input_error_merges_extra() -> None:
    error = exc.InvalidInputError("empty", temp_id="t-2", extra={"field": "content"})
    assert error.status_code == 422
    assert error.type == "invalid-input"
    assert error.extra == {"temp_id": "t-2", "field": "content"}


def test_invalid_input_error_without_context() -> None:
    assert exc.InvalidInputError("empty").extra == {}


def test_persistence_error_is_service_unavailable() -> None:
    error = exc.PersistenceError(temp_id="t-3")
    assert error.status_code == 503
    assert error.type == "persistence-failed"
    assert error.detail == "Failed to persist data"
    assert error.temp_id == "t-3"
