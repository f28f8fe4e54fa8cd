"""Chat Agent - answers questions about the carrier's own loads."""

import logging

from load_insights.agents.base import AgentResult, BaseAgent
from load_insights.agents.prompts.chat import CHAT_SYSTEM_PROMPT
from load_insights.app.config import get_settings
from load_insights.domain.schemas import LoadRecord, Stop, parse_miles

logger = logging.getLogger(__name__)

# Older turns are dropped to bound the prompt size
MAX_HISTORY_MESSAGES = 10
TOP_BROKERS = 5
RECENT_LOADS = 10

FALLBACK_REPLY = "I'm sorry, I couldn't generate a response."

# Frontend roles onto Gemini chat roles
_ROLES = {"user": "user", "assistant": "model", "model": "model"}


def _place(stop: Stop | None) -> str:
    if stop is None or not (stop.city and stop.state):
        return "Unknown"
    return f"{stop.city}, {stop.state}"


def format_loads_summary(loads: list[LoadRecord]) -> str:
    """Plain-text digest of the account's loads (newest first) for the model's context."""
    if not loads:
        return "No loads available."

    total_revenue = sum(load.rate_total for load in loads)
    with_miles = [load for load in loads if parse_miles(load.miles) > 0]
    if with_miles:
        avg_rpm = sum(load.rate_total for load in with_miles) / sum(parse_miles(load.miles) for load in with_miles)
        rpm_text = f"${avg_rpm:.2f}"
    else:
        rpm_text = "N/A (no mileage recorded)"

    lines = [
        f"You have {len(loads)} loads with the following metrics:",
        f"- Total Revenue: ${total_revenue:,.2f}",
        f"- Average Rate: ${total_revenue / len(loads):,.2f}",
        f"- Average RPM: {rpm_text}",
        "",
    ]

    revenue_by_broker: dict[str, float] = {}
    for load in loads:
        if load.broker_name:
            revenue_by_broker[load.broker_name] = revenue_by_broker.get(load.broker_name, 0.0) + load.rate_total
    if revenue_by_broker:
        lines.append("Top Brokers by Revenue:")
        ranked = sorted(revenue_by_broker.items(), key=lambda item: item[1], reverse=True)
        for idx, (name, revenue) in enumerate(ranked[:TOP_BROKERS], start=1):
            lines.append(f"{idx}. {name}: ${revenue:,.2f}")
        lines.append("")

    lines.append(f"Recent Loads (last {RECENT_LOADS}):")
    recent = loads[:RECENT_LOADS]
    for idx, load in enumerate(recent, start=1):
        pickups, deliveries = load.pickups(), load.deliveries()
        origin = _place(pickups[0] if pickups else None)
        destination = _place(deliveries[-1] if deliveries else None)
        lines.append(
            f"{idx}. Load {load.load_id}: {origin} → {destination}, "
            f"${load.rate_total:,.2f}, {load.miles or 'N/A'} miles"
        )

    return "\n".join(lines)


class ChatAgent(BaseAgent):
    """Conversational assistant grounded in the account's load data.

    Stateless: the caller sends the prior turns with every request and the
    current loads are summarised into the system instruction each time.
    """

    def __init__(self, model_name: str | None = None, timeout_seconds: float | None = None):
        settings = get_settings()
        super().__init__(
            agent_name="chat",
            model_name=model_name or settings.assistant_model,
            temperature=0.7,
            timeout_seconds=timeout_seconds or settings.llm_timeout_seconds,
        )

    async def reply(
        self,
        message: str,
        conversation_history: list[dict],
        loads: list[LoadRecord],
    ) -> AgentResult:
        """Answer ``message`` in the context of the prior turns and the loads.

        Args:
            message: The user's latest message.
            conversation_history: Previous turns as ``{role, content}`` with
                role ``user`` or ``assistant``. Only the last
                ``MAX_HISTORY_MESSAGES`` are sent.
            loads: The account's loads.

        Returns:
            AgentResult whose ``data`` is the reply text.
        """
        messages = []
        for turn in conversation_history[-MAX_HISTORY_MESSAGES:]:
            role = _ROLES.get(turn.get("role", ""))
            content = turn.get("content")
            if role is None or not content:
                continue
            messages.append({"role": role, "parts": [content]})
        messages.append({"role": "user", "parts": [message]})

        system_instruction = CHAT_SYSTEM_PROMPT.replace("{loads_summary}", format_loads_summary(loads))
        result = await self.chat(messages=messages, system_instruction=system_instruction)
        if not result.ok:
            return result

        if not (result.data or "").strip():
            logger.warning("[%s] Empty reply from model; using fallback text", self.agent_name)
            return AgentResult.success(
                data=FALLBACK_REPLY,
                tokens_used=result.tokens_used,
                latency_ms=result.latency_ms,
            )
        return result
