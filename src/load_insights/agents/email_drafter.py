"""Email Drafter - writes a carrier's outreach email to their top broker."""

import logging
from collections import Counter
from dataclasses import dataclass, field

from load_insights.agents.base import AgentResult, BaseAgent
from load_insights.agents.prompts.email_draft import EMAIL_DRAFT_PROMPT, EMAIL_DRAFT_SYSTEM_PROMPT
from load_insights.app.config import get_settings
from load_insights.domain.schemas import LoadRecord, parse_miles

logger = logging.getLogger(__name__)

TOP_ROUTES = 3
TOP_EQUIPMENT = 2


@dataclass
class BrokerProfile:
    """What the carrier has done with one broker, as fed to the draft prompt."""

    name: str
    email: str
    phone: str
    load_count: int
    avg_rate: float
    avg_rpm: float | None
    top_routes: list[str] = field(default_factory=list)
    top_equipment: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "loadCount": self.load_count,
            "avgRate": round(self.avg_rate, 2),
            "avgRPM": round(self.avg_rpm, 2) if self.avg_rpm is not None else None,
            "topRoutes": self.top_routes,
            "topEquipment": self.top_equipment,
        }


def _route(load: LoadRecord) -> str | None:
    pickups, deliveries = load.pickups(), load.deliveries()
    if not pickups or not deliveries:
        return None
    origin, destination = pickups[0], deliveries[-1]
    return f"{origin.city}, {origin.state} → {destination.city}, {destination.state}"


def build_broker_profile(loads: list[LoadRecord]) -> BrokerProfile | None:
    """Profile of the broker with the most loads, or None if no load names one.

    ``loads`` are newest first. Ties go to the broker seen first and contact
    details come from the newest load that has them.
    """
    counts = Counter(load.broker_name for load in loads if load.broker_name)
    if not counts:
        return None
    [(name, load_count)] = counts.most_common(1)
    broker_loads = [load for load in loads if load.broker_name == name]

    email = next((load.broker_email for load in broker_loads if load.broker_email), "")
    phone = next((load.broker_phone for load in broker_loads if load.broker_phone), "")

    # Per-load average, unlike the dashboard's revenue-weighted RPM
    rpms = [load.rate_total / parse_miles(load.miles) for load in broker_loads if parse_miles(load.miles) > 0]

    routes = Counter(r for r in (_route(load) for load in broker_loads) if r)
    equipment = Counter(load.equipment_type for load in broker_loads if load.equipment_type)

    return BrokerProfile(
        name=name,
        email=email,
        phone=phone,
        load_count=load_count,
        avg_rate=sum(load.rate_total for load in broker_loads) / load_count,
        avg_rpm=sum(rpms) / len(rpms) if rpms else None,
        top_routes=[route for route, _ in routes.most_common(TOP_ROUTES)],
        top_equipment=[kind for kind, _ in equipment.most_common(TOP_EQUIPMENT)],
    )


class EmailDrafter(BaseAgent):
    """Drafts a request-for-more-loads email from a ``BrokerProfile``."""

    def __init__(self, model_name: str | None = None, timeout_seconds: float | None = None):
        settings = get_settings()
        super().__init__(
            agent_name="email_drafter",
            model_name=model_name or settings.assistant_model,
            temperature=0.7,
            timeout_seconds=timeout_seconds or settings.llm_timeout_seconds,
        )

    async def draft(self, profile: BrokerProfile) -> AgentResult:
        routes = "\n".join(f"{i}. {route}" for i, route in enumerate(profile.top_routes, start=1))
        prompt = EMAIL_DRAFT_PROMPT.format(
            broker_name=profile.name,
            load_count=profile.load_count,
            avg_rate=profile.avg_rate,
            avg_rpm=f"${profile.avg_rpm:.2f}/mile" if profile.avg_rpm is not None else "not tracked",
            routes=routes or "No complete routes recorded",
            equipment=", ".join(profile.top_equipment) or "Not specified",
        )
        logger.info("[%s] Drafting email for %s (%d loads)", self.agent_name, profile.name, profile.load_count)
        return await self.generate(prompt=prompt, system_instruction=EMAIL_DRAFT_SYSTEM_PROMPT)
