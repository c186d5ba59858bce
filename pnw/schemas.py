"""Pydantic schemas for the external JSON payloads pnw consumes.

Envelopes (the proxy response, the credits response, the chat completion)
are validated strictly: a payload that does not match is rejected as a
whole so upstream API changes fail loudly instead of producing zeroed
fields.  Individual pod and credit records are validated one by one and
invalid records are skipped, so a single bad record never sinks a batch.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class RawPod(BaseModel):
    """One pod record as reported by ``get-pods-with-stats``."""

    model_config = ConfigDict(extra="ignore")

    pubkey: str | None = None
    address: str
    uptime: int = Field(default=0, ge=0)
    storage_committed: int = Field(default=0, ge=0)
    storage_used: int = Field(default=0, ge=0)
    storage_usage_percent: float = 0.0
    last_seen_timestamp: int = 0
    version: str | None = None
    is_public: bool = False
    rpc_port: int | None = None

    @field_validator(
        "uptime",
        "storage_committed",
        "storage_used",
        "storage_usage_percent",
        "last_seen_timestamp",
        "is_public",
        mode="before",
    )
    @classmethod
    def _null_to_default(cls, value: Any, info) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("pubkey", "version", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PodsPayload(BaseModel):
    """The ``data`` / ``result`` member carrying the pod list."""

    model_config = ConfigDict(extra="ignore")

    pods: list[Any] = Field(default_factory=list)


class ProxyResponse(BaseModel):
    """Envelope returned by the pRPC proxy."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    success: bool
    data: PodsPayload | None = None
    response_time: float = Field(default=0.0, alias="responseTime")
    error: str | None = None


class JsonRpcResponse(BaseModel):
    """Plain JSON-RPC 2.0 envelope, returned when talking to a seed node."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str
    id: Any = None
    result: PodsPayload | None = None
    error: Any = None


class PodCredit(BaseModel):
    pod_id: str = Field(min_length=1)
    credits: float = Field(strict=True)


class CreditsResponse(BaseModel):
    """Response of a credits API endpoint."""

    model_config = ConfigDict(extra="ignore")

    status: str | None = None
    pods_credits: list[Any]

    def to_map(self) -> dict[str, float]:
        """Return ``pod_id -> credits``, skipping malformed entries."""
        out: dict[str, float] = {}
        skipped = 0
        for entry in self.pods_credits:
            try:
                item = PodCredit.model_validate(entry)
            except ValidationError:
                skipped += 1
                continue
            out[item.pod_id] = item.credits
        if skipped:
            logger.debug("Skipped %d malformed credits entries", skipped)
        return out


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class ChatChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: ChatMessage


class ChatCompletion(BaseModel):
    """Minimal OpenAI-compatible chat completion envelope."""

    model_config = ConfigDict(extra="ignore")

    choices: list[ChatChoice] = Field(min_length=1)


class SummaryReply(BaseModel):
    """JSON object the summary model is asked to reply with."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str | None = None
    content: str | None = None
    key_recommendation: str | None = Field(default=None, alias="keyRecommendation")


def parse_pods(items: list[Any]) -> tuple[list[RawPod], int]:
    """Validate raw pod dicts one by one.

    Args:
        items: The ``pods`` list from a proxy or JSON-RPC response.

    Returns:
        ``(pods, dropped)``: the valid ``RawPod`` records in input order and
        the number of records that failed validation.
    """
    pods: list[RawPod] = []
    dropped = 0
    for item in items:
        try:
            pods.append(RawPod.model_validate(item))
        except ValidationError as exc:
            dropped += 1
            logger.warning(
                "Dropping malformed pod record (%d error(s)): %s",
                exc.error_count(),
                exc.errors()[0]["msg"],
            )
    return pods, dropped
