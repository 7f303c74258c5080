"""Agent bootstrap request.

Builds the body POSTed to the backend connect endpoint: the service
selection plus an RTVI config list configuring the agent's LLM with the
system prompt and the registered tool schemas.
"""

from collections.abc import Sequence
from typing import Any

from voice_orchestrator.config import AgentConfig


def build_llm_config(
    agent: AgentConfig, tool_definitions: Sequence[dict[str, Any]]
) -> list[dict[str, Any]]:
    """RTVI service config for the agent's LLM."""
    options: list[dict[str, Any]] = [
        {
            "name": "initial_messages",
            "value": [
                {
                    "role": "system",
                    "content": [{"type": "text", "text": agent.system_prompt}],
                }
            ],
        },
        {"name": "run_on_config", "value": agent.run_on_config},
    ]
    if tool_definitions:
        options.append({"name": "tools", "value": list(tool_definitions)})

    return [{"service": "llm", "options": options}]


def build_connect_request(
    agent: AgentConfig, tool_definitions: Sequence[dict[str, Any]]
) -> dict[str, Any]:
    """Full connect request body.

    Args:
        agent: Agent settings (services, prompt)
        tool_definitions: Schemas of the registered tools

    Returns:
        JSON-serializable body with ``services`` and ``config``
    """
    return {
        "services": dict(agent.services),
        "config": build_llm_config(agent, tool_definitions),
    }
