"""Tests for front-end message envelopes."""

import pytest
from pydantic import ValidationError

from dtcontrol.core.exceptions import NotReadyError
from dtcontrol.models.messages import BridgeRequest, BridgeResponse, error_response, success_response


def test_response_rejects_both_error_and_result():
    with pytest.raises(ValidationError):
        BridgeResponse(channel="sync", request_id=1, error="x", result={"a": 1})


def test_response_rejects_neither():
    with pytest.raises(ValidationError):
        BridgeResponse(channel="sync", request_id=1)


def test_success_response_echoes_correlation():
    request = BridgeRequest(channel="txInfo", request_id={"opaque": [1, 2]}, params=["abc"])
    response = success_response(request, {"hash": "abc"})
    assert response.channel == "txInfo"
    assert response.request_id == {"opaque": [1, 2]}
    assert response.ok


def test_error_response_uses_exception_message():
    response = error_response("status", 4, NotReadyError())
    assert response.error == "API server has not been started!"
    assert response.result is None
    assert not response.ok


def test_error_response_falls_back_to_exception_name():
    response = error_response("status", 4, RuntimeError())
    assert response.error == "RuntimeError"
