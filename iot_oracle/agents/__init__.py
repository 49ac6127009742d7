"""LLM-backed agents.

``AssistantAgent`` lives in ``iot_oracle.agents.assistant`` and is imported
from there, since it depends on the workspace which itself uses the analyst.
"""

from iot_oracle.agents.analyst import ProjectAnalystAgent
from iot_oracle.agents.base import BaseAgent

__all__ = ["BaseAgent", "ProjectAnalystAgent"]
