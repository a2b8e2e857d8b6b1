"""
HTTP agent capability.

Forwards invocations to a remote agent service that exposes
``POST {base_url}/agents/{agent_type}/invoke`` and answers with an
AgentInvocationResult-shaped JSON body.
"""

from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from agentchain.models.agent_models import AgentInvocationResult
from agentchain.models.constants import AgentType
from agentchain.services.exceptions import StepInvocationError
from agentchain.utils.logger import get_module_logger

logger = get_module_logger(__name__)


class HttpAgent:
    """Capability backed by a remote agent service."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self.headers = {"User-Agent": "agentchain/0.1", "Accept": "application/json"}

    async def invoke(
        self,
        agent_type: AgentType,
        config: Dict[str, Any],
        input_data: Dict[str, Any],
    ) -> AgentInvocationResult:
        url = f"{self.base_url}/agents/{agent_type.value}/invoke"
        try:
            response = await self.client.post(
                url,
                json={"config": config, "input": input_data},
                headers=self.headers,
            )
            response.raise_for_status()
            return AgentInvocationResult.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise StepInvocationError(
                f"Agent service returned {e.response.status_code} for {agent_type.value}",
                agent_type=agent_type.value,
                context={"url": url},
            ) from e
        except httpx.HTTPError as e:
            raise StepInvocationError(
                f"Agent service request failed for {agent_type.value}: {str(e)}",
                agent_type=agent_type.value,
                context={"url": url},
            ) from e
        except (ValueError, ValidationError) as e:
            raise StepInvocationError(
                f"Agent service returned an invalid result for {agent_type.value}: {str(e)}",
                agent_type=agent_type.value,
                context={"url": url},
            ) from e

    async def close(self) -> None:
        """Close the HTTP client only if we own it."""
        if self._owns_client:
            await self.client.aclose()
