"""
Request models for the dispatch entry point.

An inbound trigger is either a direct dispatch (organisation, event type
and payload all present) or a retry sweep (anything else). The variant is
decided once, here, before any shared logic runs.
"""
import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class DirectDispatch(BaseModel):
    """Fan an event out to an organisation's subscribed endpoints."""
    model_config = ConfigDict(populate_by_name=True)

    mode: Literal["direct"] = "direct"
    organisation_id: str = Field(alias="organizationId")
    event_type: str = Field(alias="eventType")
    payload: Any
    # Explicit target, ignores the endpoint's subscriptions (e.g. test.ping)
    endpoint_id: str | None = Field(default=None, alias="endpointId")


class SweepRequest(BaseModel):
    """Re-drive recently failed deliveries."""
    mode: Literal["sweep"] = "sweep"


DispatchRequest = DirectDispatch | SweepRequest

DIRECT_DISPATCH_FIELDS = ("organizationId", "eventType", "payload")


def _present(value: Any) -> bool:
    # null, false, 0 and "" count as missing; {} and [] are real payloads
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0
    return True


def parse_dispatch_body(raw: bytes | None) -> DispatchRequest:
    """
    Decide the request variant from a raw request body.

    An empty body, a non-object body, or an object missing any of
    organizationId/eventType/payload selects sweep mode.

    Raises:
        ValueError: body is not valid JSON
        pydantic.ValidationError: direct-dispatch fields have the wrong type
    """
    if not raw or not raw.strip():
        return SweepRequest()

    body = json.loads(raw)
    if not isinstance(body, dict):
        return SweepRequest()

    if all(_present(body.get(name)) for name in DIRECT_DISPATCH_FIELDS):
        fields = (*DIRECT_DISPATCH_FIELDS, "endpointId")
        return DirectDispatch.model_validate(
            {name: body[name] for name in fields if name in body}
        )

    return SweepRequest()
