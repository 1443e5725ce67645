import os
from collections.abc import Sequence
from typing import Literal, NamedTuple

from openai import OpenAI

from smartspendr.domain.aggregation import sum_amounts
from smartspendr.logger import get_logger
from smartspendr.models import ExpenseRecord

logger = get_logger(__name__)

DEFAULT_MODEL = "gpt-3.5-turbo"
CONTEXT_RECENT_LIMIT = 10

# Checked in order; the first keyword found in the query wins.
FALLBACK_RESPONSES: tuple[tuple[str, str], ...] = (
    (
        "save money",
        "Here are some ways to save money: 1) Track all expenses daily 2) Set category budgets "
        "3) Cook meals at home 4) Review subscriptions monthly 5) Use the 24-hour rule for "
        "non-essential purchases",
    ),
    (
        "budget",
        "For effective budgeting: Follow the 50/30/20 rule - 50% for needs, 30% for wants, "
        "20% for savings. Set realistic category limits and review them monthly.",
    ),
    (
        "analyze",
        "Based on general patterns: Look for your largest expense categories, identify "
        "unnecessary recurring costs, and track daily spending trends to find optimization "
        "opportunities.",
    ),
)
DEFAULT_FALLBACK = (
    "I can help you with budgeting, saving money, analyzing spending patterns, and creating "
    "financial goals. What specific aspect of your finances would you like to discuss?"
)


AdviceSource = Literal["llm", "fallback"]


class Advice(NamedTuple):
    text: str
    source: AdviceSource


def fallback_advice(query: str) -> str:
    lowered = (query or "").lower()
    for keyword, response in FALLBACK_RESPONSES:
        if keyword in lowered:
            return response
    return DEFAULT_FALLBACK


def build_context_prompt(query: str, records: Sequence[ExpenseRecord]) -> str:
    recent = records[:CONTEXT_RECENT_LIMIT]
    total = sum_amounts(records)
    categories = list(dict.fromkeys(record.category.value for record in records))
    recent_lines = ", ".join(
        f"{record.title}: ${record.amount} ({record.category.value})" for record in recent
    )

    return f"""You are SmartSpendr AI, a personal financial advisor. Help the user with their expense management.

User Query: "{query}"

User's Recent Financial Data:
- Total Expenses: ${total:.2f}
- Number of Transactions: {len(records)}
- Categories: {', '.join(categories)}
- Recent Expenses: {recent_lines}

Provide practical, personalized financial advice based on this data. Be concise, actionable, and supportive."""


class AdviceClient:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ):
        self._configure(api_key, model, base_url)

    def _configure(self, api_key: str | None, model: str | None, base_url: str | None) -> None:
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL") or DEFAULT_MODEL
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL") or None
        self.client: OpenAI | None = None
        if self.api_key:
            self.client = OpenAI(api_key=self.api_key, base_url=self.base_url)
            logger.info(
                "[ADVICE] LLM advice enabled: model=%s, base_url=%s",
                self.model,
                self.base_url or "default",
            )
        else:
            logger.warning("[ADVICE] OPENAI_API_KEY not set. Using canned advice only.")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def refresh(self) -> None:
        self._configure(None, None, None)

    def get_advice(self, query: str, records: Sequence[ExpenseRecord] = ()) -> str:
        return self.advise(query, records).text

    def advise(self, query: str, records: Sequence[ExpenseRecord] = ()) -> Advice:
        if self.client is None:
            return Advice(fallback_advice(query), "fallback")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are a helpful financial assistant."},
                    {"role": "user", "content": build_context_prompt(query, records)},
                ],
                temperature=0.7,
            )
            content = response.choices[0].message.content
        except Exception as exc:
            logger.error("[ADVICE] LLM error: %s", exc)
            return Advice(fallback_advice(query), "fallback")

        if not content or not content.strip():
            logger.warning("[ADVICE] Empty LLM response, using fallback.")
            return Advice(fallback_advice(query), "fallback")
        return Advice(content.strip(), "llm")
