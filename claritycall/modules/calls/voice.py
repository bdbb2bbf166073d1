"""Outbound voice-call providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import pydantic

from claritycall.config import get_settings
from claritycall.errors import ProviderError
from claritycall.logging_config import get_logger
from claritycall.modules.calls.models import PlacedCall

logger = get_logger(__name__)

VoiceVariables = dict[str, str | int | float | bool]


class BaseVoiceProvider(ABC):
    """Places an outbound call with a conversational agent."""

    @abstractmethod
    async def place_call(
        self,
        agent_id: str,
        agent_phone_number_id: str,
        to_number: str,
        variables: VoiceVariables,
    ) -> PlacedCall:
        """Start the call and return the provider's identifiers."""


class ElevenLabsVoiceProvider(BaseVoiceProvider):
    """ElevenLabs Conversational AI outbound calls via their Twilio integration.

    Placing a call is not idempotent, so it is never retried here.
    """

    OUTBOUND_PATH = "/v1/convai/twilio/outbound-call"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key or settings.elevenlabs_api_key
        self._base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.clarity_provider_timeout_seconds

    async def place_call(
        self,
        agent_id: str,
        agent_phone_number_id: str,
        to_number: str,
        variables: VoiceVariables,
    ) -> PlacedCall:
        if not self._api_key:
            raise ProviderError("ElevenLabs API key is not configured")

        body: dict[str, Any] = {
            "agent_id": agent_id,
            "agent_phone_number_id": agent_phone_number_id,
            "to_number": to_number,
            "conversation_initiation_client_data": {"dynamic_variables": variables},
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                headers={"xi-api-key": self._api_key},
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(self.OUTBOUND_PATH, json=body)
        except httpx.HTTPError as exc:
            raise ProviderError(f"ElevenLabs call failed for {to_number}: {exc}") from exc

        if resp.status_code >= 400:
            raise ProviderError(
                f"ElevenLabs call failed for {to_number}: HTTP {resp.status_code}",
                detail=resp.text[:500],
            )

        data = resp.json()
        try:
            placed = PlacedCall(
                call_sid=data.get("callSid") or "",
                conversation_id=data.get("conversation_id") or data.get("conversationId") or "",
            )
        except pydantic.ValidationError as exc:
            raise ProviderError("ElevenLabs did not return a call ID and conversation ID", detail=str(data)[:500]) from exc

        logger.info("voice_call_placed", agent_id=agent_id, call_sid=placed.call_sid)
        return placed
