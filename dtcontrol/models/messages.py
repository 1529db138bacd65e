"""Front-end message envelopes."""

from typing import Any

from pydantic import BaseModel, Field, model_validator

Primitive = str | int | float | bool | None


class BridgeRequest(BaseModel):
    """A named request from the front end.

    ``request_id`` is chosen by the caller and only echoed back.
    """

    channel: str
    request_id: Any = None
    params: list[Primitive] = Field(default_factory=list)


class BridgeResponse(BaseModel):
    """Reply correlated to a request by ``(channel, request_id)``."""

    channel: str
    request_id: Any = None
    error: str | None = None
    result: Any = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "BridgeResponse":
        if (self.error is None) == (self.result is None):
            raise ValueError("response must carry exactly one of error or result")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None


def success_response(request: BridgeRequest, result: Any) -> BridgeResponse:
    """Build a result reply for *request*."""
    return BridgeResponse(channel=request.channel, request_id=request.request_id, result=result)


def error_response(channel: str, request_id: Any, error: BaseException | str) -> BridgeResponse:
    """Build an error reply."""
    return BridgeResponse(channel=channel, request_id=request_id, error=str(error) or type(error).__name__)
