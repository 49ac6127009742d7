"""Project analyst: complexity analysis and market-price lookup."""

import time

from anthropic import AsyncAnthropic
from pydantic import TypeAdapter

from iot_oracle.agents.base import BaseAgent
from iot_oracle.models.analysis import ComplexityAnalysis
from iot_oracle.models.inventory import MarketDataItem
from iot_oracle.utils.prompts import PromptTemplates

_quotes = TypeAdapter(list[MarketDataItem])


class ProjectAnalystAgent(BaseAgent):
    """Answers structured planning questions with JSON-only LLM calls."""

    def __init__(self, client: AsyncAnthropic | None = None):
        super().__init__("project_analyst", client=client)

    @property
    def system_prompt(self) -> str:
        return "You are a precise assistant that answers with JSON only."

    async def analyze_complexity(
        self,
        project_name: str,
        description: str,
        components: list[str],
    ) -> ComplexityAnalysis:
        """
        Decide whether a project should be split into phased sub-projects.

        Args:
            project_name: Name of the project
            description: What the project does
            components: Component names in the bill of materials

        Returns:
            ComplexityAnalysis; raises if the reply is not valid JSON of that shape
        """
        start_time = time.time()
        prompt = PromptTemplates.COMPLEXITY_ANALYSIS.format(
            project_name=project_name,
            description=description or "(none)",
            components=", ".join(components) or "(none)",
        )
        response = await self._call_llm_with_retry([{"role": "user", "content": prompt}])
        analysis = ComplexityAnalysis.model_validate(
            self._parse_json(self._response_text(response))
        )

        self.logger.log_interaction(
            action="analyze_complexity",
            duration_ms=(time.time() - start_time) * 1000,
            project_name=project_name,
            is_complex=analysis.is_complex,
            sub_projects=len(analysis.suggested_sub_projects),
        )
        return analysis

    async def lookup_market_data(
        self,
        item_name: str,
        search_query: str | None = None,
    ) -> list[MarketDataItem]:
        """Fetch current supplier quotes for an item."""
        start_time = time.time()
        prompt = PromptTemplates.MARKET_LOOKUP.format(
            item_name=item_name,
            search_query=search_query or item_name,
        )
        response = await self._call_llm_with_retry(
            [{"role": "user", "content": prompt}],
            max_tokens=1024,
        )
        quotes = _quotes.validate_python(self._parse_json(self._response_text(response)))

        self.logger.log_interaction(
            action="lookup_market_data",
            duration_ms=(time.time() - start_time) * 1000,
            item_name=item_name,
            quotes=len(quotes),
        )
        return quotes
