"""Unit tests for the agent bootstrap request."""

from voice_orchestrator.agent_config import build_connect_request, build_llm_config
from voice_orchestrator.config import AgentConfig

TOOL = {"name": "get_weather", "description": "Weather", "input_schema": {"type": "object"}}


def test_connect_request_shape() -> None:
    """Test services and LLM config are both present."""
    agent = AgentConfig(services={"llm": "anthropic"}, system_prompt="Be brief.")

    request = build_connect_request(agent, [TOOL])

    assert request["services"] == {"llm": "anthropic"}
    assert request["config"][0]["service"] == "llm"


def test_llm_options() -> None:
    """Test system prompt, run_on_config and tools options."""
    agent = AgentConfig(system_prompt="Be brief.", run_on_config=False)

    options = {o["name"]: o["value"] for o in build_llm_config(agent, [TOOL])[0]["options"]}

    assert options["initial_messages"] == [
        {"role": "system", "content": [{"type": "text", "text": "Be brief."}]}
    ]
    assert options["run_on_config"] is False
    assert options["tools"] == [TOOL]


def test_tools_option_omitted_without_tools() -> None:
    """Test no tools option is sent when nothing is registered."""
    options = build_llm_config(AgentConfig(), [])[0]["options"]
    assert [o["name"] for o in options] == ["initial_messages", "run_on_config"]
