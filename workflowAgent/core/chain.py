"""Append-only audit record of what a task executed.

The chain is an arena: one flat list of AgentChain records per task, looked
up by node id. Each AgentChain owns its ToolChain records in the order the
model emitted the calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from workflowAgent.core.workflow import WorkflowAgent
from workflowAgent.llm.types import LLMRequest, TokenUsage, ToolResult


@dataclass
class ToolChain:
    tool_call_id: str
    tool_name: str
    request: Optional[LLMRequest] = None
    params: Dict[str, Any] = field(default_factory=dict)
    tool_result: Optional[ToolResult] = None

    @property
    def is_error(self) -> bool:
        return bool(self.tool_result and self.tool_result.is_error)

    def update_params(self, params: Dict[str, Any]) -> None:
        self.params = params

    def update_tool_result(self, result: ToolResult) -> None:
        self.tool_result = result


@dataclass
class AgentChain:
    agent: WorkflowAgent
    agent_request: Optional[LLMRequest] = None
    agent_result: Optional[str] = None
    tools: List[ToolChain] = field(default_factory=list)
    usage: List[TokenUsage] = field(default_factory=list)

    def push(self, tool_chain: ToolChain) -> ToolChain:
        self.tools.append(tool_chain)
        return tool_chain

    def allocate(self, tool_calls: List[Dict[str, Any]], request: Optional[LLMRequest] = None) -> List[ToolChain]:
        """Reserve one ToolChain slot per call, in emission order."""
        return [
            self.push(
                ToolChain(
                    tool_call_id=call["id"],
                    tool_name=call["name"],
                    request=request,
                    params=call.get("args") or {},
                )
            )
            for call in tool_calls
        ]


@dataclass
class Chain:
    task_prompt: str = ""
    plan_request: Optional[LLMRequest] = None
    plan_result: Optional[str] = None
    agents: List[AgentChain] = field(default_factory=list)

    def push(self, agent_chain: AgentChain) -> AgentChain:
        self.agents.append(agent_chain)
        return agent_chain

    def get_agent_chain(self, node_id: str) -> Optional[AgentChain]:
        """Latest chain record for a node id (a node may run more than once)."""
        for agent_chain in reversed(self.agents):
            if agent_chain.agent.id == node_id:
                return agent_chain
        return None
