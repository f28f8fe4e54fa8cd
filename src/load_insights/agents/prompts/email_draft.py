"""Prompts for the broker outreach email drafter."""

EMAIL_DRAFT_SYSTEM_PROMPT = (
    "You are a professional freight carrier writing business emails to brokers. "
    "Be professional, friendly and concise."
)

EMAIL_DRAFT_PROMPT = """Write an email to a broker you have worked with successfully, asking for more loads.

Broker information:
- Broker company: {broker_name}
- Loads completed: {load_count}
- Average rate: ${avg_rate:,.2f}
- Average RPM: {avg_rpm}

Routes you have run for them:
{routes}

Equipment you typically use:
{equipment}

The email must:
1. Thank them for the past business and mention the {load_count} loads
2. Express interest in running more loads for them
3. Mention the routes you have completed
4. Mention your equipment capabilities
5. Ask whether they have loads available on similar routes
6. Stay concise and professional (3-4 paragraphs at most)
7. Sign off with "Best regards," and no name

Do not include a subject line. Start directly with the greeting.
"""
