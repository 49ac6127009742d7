"""Utility modules."""

from iot_oracle.utils.logging import setup_logging
from iot_oracle.utils.prompts import PromptTemplates

__all__ = ["setup_logging", "PromptTemplates"]
