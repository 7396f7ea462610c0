"""
Agent Transport

Boundary between the engine and remote collection agents. The engine sends
one check (and optionally a custom script) to an agent and receives a single
envelope back:

    POST {agent.endpoint}/checks
    {"check": {...}, "target": "...", "customScript": "..."}

    200 {"status": "success" | "error", "data": {...}, "executionTime": 1.2}

Every failure to obtain a well-formed envelope is reported as
ExecutionError(kind=TRANSPORT_FAILURE); raw httpx exceptions never leave
this module.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx

from ..http_client import HttpClient, RetryPolicy
from .exceptions import ExecutionError, ExecutionErrorKind
from .models import CheckSpec, RemoteExecutor

logger = logging.getLogger(__name__)

AGENT_STATUSES = ("success", "error")


@dataclass(frozen=True)
class AgentEnvelope:
    """Decoded agent response."""

    status: str
    data: Dict[str, Any] = field(default_factory=dict)
    execution_time: float = 0.0


class AgentTransport(Protocol):
    """Anything that can deliver a check to an agent and return its envelope."""

    async def dispatch(
        self,
        agent: RemoteExecutor,
        check: CheckSpec,
        target: str,
        custom_script: Optional[str] = None,
    ) -> AgentEnvelope:
        ...


def decode_envelope(agent_id: str, body: Any) -> AgentEnvelope:
    """
    Validate and decode a raw agent response body.

    Args:
        agent_id: Agent that produced the body, for error context
        body: Parsed JSON body

    Returns:
        AgentEnvelope

    Raises:
        ExecutionError: TRANSPORT_FAILURE if the body is not a valid envelope
    """
    if not isinstance(body, dict):
        raise ExecutionError(
            ExecutionErrorKind.TRANSPORT_FAILURE,
            f"Agent {agent_id} returned a non-object response",
            {"agent_id": agent_id},
        )

    status = body.get("status")
    if status not in AGENT_STATUSES:
        raise ExecutionError(
            ExecutionErrorKind.TRANSPORT_FAILURE,
            f"Agent {agent_id} returned unknown status: {status!r}",
            {"agent_id": agent_id},
        )

    data = body.get("data") or {}
    if not isinstance(data, dict):
        raise ExecutionError(
            ExecutionErrorKind.TRANSPORT_FAILURE,
            f"Agent {agent_id} returned non-object data",
            {"agent_id": agent_id},
        )

    try:
        execution_time = float(body.get("executionTime", 0.0))
    except (TypeError, ValueError) as e:
        raise ExecutionError(
            ExecutionErrorKind.TRANSPORT_FAILURE,
            f"Agent {agent_id} returned invalid executionTime",
            {"agent_id": agent_id},
            cause=e,
        )

    return AgentEnvelope(status=status, data=data, execution_time=execution_time)


class HttpAgentTransport:
    """
    Agent transport over HTTP using the shared retrying httpx client.

    Per-unit timeouts are enforced by the executor; the client timeout here
    is only an upper bound for a single request.
    """

    def __init__(self, client: Optional[HttpClient] = None, request_timeout: float = 30.0):
        self.client = client or HttpClient(
            retry_policy=RetryPolicy(max_retries=1, base_delay=0.5, max_delay=2.0),
            timeout=request_timeout,
            user_agent="AuditWatch-Engine/1.0",
        )

    async def close(self):
        await self.client.close()

    async def dispatch(
        self,
        agent: RemoteExecutor,
        check: CheckSpec,
        target: str,
        custom_script: Optional[str] = None,
    ) -> AgentEnvelope:
        if not agent.endpoint:
            raise ExecutionError(
                ExecutionErrorKind.TRANSPORT_FAILURE,
                f"Agent {agent.agent_id} has no registered endpoint",
                {"agent_id": agent.agent_id},
            )

        url = f"{agent.endpoint.rstrip('/')}/checks"
        payload = {
            "check": check.to_wire(),
            "target": target,
            "customScript": custom_script,
        }

        try:
            response = await self.client.post_json(url, payload)
            body = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Transport to agent {agent.agent_id} failed: {type(e).__name__}")
            raise ExecutionError(
                ExecutionErrorKind.TRANSPORT_FAILURE,
                f"Agent {agent.agent_id} unreachable",
                {"agent_id": agent.agent_id, "check_id": check.check_id},
                cause=e,
            )
        except ValueError as e:
            raise ExecutionError(
                ExecutionErrorKind.TRANSPORT_FAILURE,
                f"Agent {agent.agent_id} returned invalid JSON",
                {"agent_id": agent.agent_id, "check_id": check.check_id},
                cause=e,
            )

        return decode_envelope(agent.agent_id, body)
