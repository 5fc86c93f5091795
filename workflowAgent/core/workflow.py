"""Workflow schema and the plan text format.

The planner emits an XML document describing an ordered list of agent nodes::

    <root>
      <name>Research and save</name>
      <thought>...</thought>
      <agents>
        <agent name="Browser" id="0" dependsOn="">
          <task>Collect information about X</task>
          <nodes>
            <node output="notes">Search for X and read the top results</node>
          </nodes>
        </agent>
        <agent name="File" id="1" dependsOn="0">
          <task>Write the summary to Y</task>
          <nodes>
            <node input="notes">Write the notes to Y</node>
          </nodes>
        </agent>
      </agents>
    </root>

Node ids are rewritten to ``<taskId>-<two-digit index>`` and ``dependsOn``
indices are mapped to those ids. Parsing in non-strict mode tolerates a
document that is still streaming in.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from workflowAgent.utils.error_handler import WorkflowGraphError, WorkflowParseError

LOGGER = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<(/?)([A-Za-z_][\w\-.]*)([^<>]*?)(/?)>")
_BARE_AMP_RE = re.compile(r"&(?!(?:amp|lt|gt|quot|apos|#\d+|#x[0-9a-fA-F]+);)")


class WorkflowNode(BaseModel):
    """Single step line inside an agent node."""

    text: str = ""
    input: Optional[str] = None
    output: Optional[str] = None


class WorkflowAgent(BaseModel):
    """One agent node of the workflow graph."""

    id: str
    name: str = ""
    task: str = ""
    depends_on: List[str] = Field(default_factory=list)
    nodes: List[WorkflowNode] = Field(default_factory=list)
    xml: str = ""
    status: Literal["init", "running", "done", "error"] = "init"


class Workflow(BaseModel):
    """Planned dependency graph of agent subtasks for one task."""

    task_id: str
    name: str = ""
    thought: str = ""
    task_prompt: str = ""
    agents: List[WorkflowAgent] = Field(default_factory=list)
    xml: str = ""
    modified: bool = False

    def get_agent(self, node_id: str) -> Optional[WorkflowAgent]:
        for agent in self.agents:
            if agent.id == node_id:
                return agent
        return None

    def index_of(self, node_id: str) -> int:
        for i, agent in enumerate(self.agents):
            if agent.id == node_id:
                return i
        return -1

    def validate_graph(self) -> None:
        """Check that ids strictly increase and dependencies point backwards.

        Raises:
            WorkflowGraphError: If the invariant is violated
        """
        seen: set[str] = set()
        previous = -1
        for agent in self.agents:
            sequence = node_sequence(agent.id)
            if sequence <= previous:
                raise WorkflowGraphError(f"Node id {agent.id} is not greater than its predecessor")
            for dependency in agent.depends_on:
                if dependency not in seen:
                    raise WorkflowGraphError(
                        f"Node {agent.id} depends on {dependency}, which is not an earlier node"
                    )
            seen.add(agent.id)
            previous = sequence


def node_id(task_id: str, index: int) -> str:
    return f"{task_id}-{index:02d}"


def node_sequence(agent_id: str) -> int:
    """Return the numeric sequence suffix of a node id (``-1`` if absent)."""
    suffix = agent_id.rsplit("-", 1)[-1]
    try:
        return int(suffix)
    except ValueError:
        return -1


def close_partial_xml(text: str) -> str:
    """Close every tag still open in a truncated XML document."""
    last_open = text.rfind("<")
    if last_open > text.rfind(">"):
        text = text[:last_open]
    stack: List[str] = []
    for match in _TAG_RE.finditer(text):
        closing, name, _, self_closing = match.groups()
        if self_closing:
            continue
        if closing:
            if name in stack:
                while stack:
                    if stack.pop() == name:
                        break
        else:
            stack.append(name)
    return text + "".join(f"</{name}>" for name in reversed(stack))


def _element_text(element: Optional[ET.Element]) -> str:
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


def _parse_depends_on(raw: Optional[str], task_id: str, index: int, strict: bool) -> List[str]:
    """Resolve ``dependsOn`` to earlier node ids.

    Malformed, self and forward references raise in strict mode and are
    dropped otherwise.
    """
    depends_on: List[str] = []
    if not raw:
        return depends_on
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            dependency = int(node_sequence(item) if "-" in item else item)
        except ValueError:
            if strict:
                raise WorkflowParseError(f"Node {index} has a malformed dependency '{item}'")
            LOGGER.debug(f"Ignoring malformed dependency '{item}' on node {index}")
            continue
        if not 0 <= dependency < index:
            if strict:
                raise WorkflowParseError(f"Node {index} depends on {item}, which is not an earlier node")
            LOGGER.warning(f"Dropping dependency {item} of node {index}: not an earlier node")
            continue
        dep_id = node_id(task_id, dependency)
        if dep_id not in depends_on:
            depends_on.append(dep_id)
    return depends_on


def parse_workflow(
    task_id: str,
    text: str,
    done: bool,
    thinking: Optional[str] = None,
) -> Optional[Workflow]:
    """Parse plan text into a Workflow.

    Args:
        task_id: Owning task id (used to derive node ids)
        text: Plan text, possibly surrounded by prose
        done: Strict mode; when False, a partial document yields a partial
            workflow (or None) instead of raising
        thinking: Reasoning text used as ``thought`` when the plan has none

    Raises:
        WorkflowParseError: In strict mode, if no valid document is found or
            a dependency does not name an earlier node
    """
    start = text.find("<root")
    if start < 0:
        if done:
            raise WorkflowParseError("Plan output does not contain a <root> element")
        return None
    snippet = text[start:]
    end = snippet.find("</root>")
    if end >= 0:
        snippet = snippet[: end + len("</root>")]
    elif done:
        raise WorkflowParseError("Plan output is missing </root>")
    else:
        snippet = close_partial_xml(snippet)

    try:
        root = ET.fromstring(_BARE_AMP_RE.sub("&amp;", snippet))
    except ET.ParseError as e:
        if done:
            raise WorkflowParseError(f"Invalid plan XML: {e}") from e
        return None

    agents: List[WorkflowAgent] = []
    agents_element = root.find("agents")
    agent_elements = [] if agents_element is None else [el for el in agents_element if el.tag == "agent"]
    for index, element in enumerate(agent_elements):
        depends_on = _parse_depends_on(element.get("dependsOn"), task_id, index, done)
        element.set("id", str(index))
        nodes: List[WorkflowNode] = []
        nodes_element = element.find("nodes")
        if nodes_element is not None:
            for child in nodes_element:
                nodes.append(
                    WorkflowNode(
                        text=_element_text(child),
                        input=child.get("input"),
                        output=child.get("output"),
                    )
                )
        agents.append(
            WorkflowAgent(
                id=node_id(task_id, index),
                name=element.get("name", ""),
                task=_element_text(element.find("task")),
                depends_on=depends_on,
                nodes=nodes,
                xml=ET.tostring(element, encoding="unicode"),
            )
        )

    return Workflow(
        task_id=task_id,
        name=_element_text(root.find("name")),
        thought=_element_text(root.find("thought")) or (thinking or "").strip(),
        agents=agents,
        xml=snippet,
    )


def build_agent_element(agent: WorkflowAgent, index: int, index_by_id: Dict[str, int]) -> ET.Element:
    element = ET.Element("agent", {"name": agent.name, "id": str(index)})
    element.set(
        "dependsOn",
        ",".join(str(index_by_id[dep]) for dep in agent.depends_on if dep in index_by_id),
    )
    ET.SubElement(element, "task").text = agent.task
    nodes_element = ET.SubElement(element, "nodes")
    for node in agent.nodes:
        attrs = {}
        if node.input:
            attrs["input"] = node.input
        if node.output:
            attrs["output"] = node.output
        ET.SubElement(nodes_element, "node", attrs).text = node.text
    return element


def build_workflow_xml(workflow: Workflow) -> str:
    """Serialize a workflow back to plan text (inverse of ``parse_workflow``)."""
    index_by_id = {agent.id: i for i, agent in enumerate(workflow.agents)}
    root = ET.Element("root")
    ET.SubElement(root, "name").text = workflow.name
    ET.SubElement(root, "thought").text = workflow.thought
    agents_element = ET.SubElement(root, "agents")
    for i, agent in enumerate(workflow.agents):
        agents_element.append(build_agent_element(agent, i, index_by_id))
    return ET.tostring(root, encoding="unicode")
