"""Prompt Template Builder for WorkflowAgent

Prompts live as Jinja2 templates under ``workflowAgent/config/prompt_templates``
and are rendered in a sandboxed environment. ``load_custom_prompt`` lets a
host render its own template file with the same parameters.
"""
from functools import lru_cache
from pathlib import Path
from typing import Union

from jinja2.sandbox import SandboxedEnvironment

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "config" / "prompt_templates"


@lru_cache(maxsize=None)
def _load_template(template_path: Path) -> str:
    with open(template_path, "r", encoding="utf-8") as f:
        return f.read()


class PromptBuilder:
    """Prompt 模板构建器"""

    AGENT_SYSTEM_TEMPLATE = "agent_system.jinja2"
    AGENT_USER_TEMPLATE = "agent_user.jinja2"
    PLANNER_SYSTEM_TEMPLATE = "planner_system.jinja2"
    PLANNER_USER_TEMPLATE = "planner_user.jinja2"

    _env = SandboxedEnvironment(trim_blocks=True, lstrip_blocks=True)

    @classmethod
    def _render(cls, template_name: str, params: dict) -> str:
        template = _load_template(TEMPLATE_DIR / template_name)
        return cls._env.from_string(template).render(**params).strip()

    @classmethod
    def load_agent_system_prompt(cls, **params) -> str:
        return cls._render(cls.AGENT_SYSTEM_TEMPLATE, params)

    @classmethod
    def load_agent_user_prompt(cls, **params) -> str:
        return cls._render(cls.AGENT_USER_TEMPLATE, params)

    @classmethod
    def load_planner_system_prompt(cls, **params) -> str:
        """加载 Planner 系统提示

        Args:
            **params: agents (list of {name, description}), platform, datetime

        Returns:
            渲染后的 Planner 系统提示
        """
        return cls._render(cls.PLANNER_SYSTEM_TEMPLATE, params)

    @classmethod
    def load_planner_user_prompt(cls, **params) -> str:
        return cls._render(cls.PLANNER_USER_TEMPLATE, params)

    @classmethod
    def load_custom_prompt(cls, template_path: Union[str, Path], **params) -> str:
        """加载自定义模板

        Args:
            template_path: 模板文件路径
            **params: 模板参数

        Returns:
            渲染后的 Prompt
        """
        template = _load_template(Path(template_path).resolve())
        return cls._env.from_string(template).render(**params).strip()
