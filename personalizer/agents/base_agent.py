from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..services.llm_service import LLMService, llm_service


class BaseAgent(ABC):
    """Base class for LLM-backed agents."""

    def __init__(self, name: str, description: str, llm: Optional[LLMService] = None):
        self.name = name
        self.description = description
        self.llm = llm or llm_service

    @abstractmethod
    def get_system_prompt(self) -> str:
        pass

    @abstractmethod
    async def process(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        pass
