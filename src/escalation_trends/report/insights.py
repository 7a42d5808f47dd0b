from __future__ import annotations

import logging
from typing import Optional, Sequence

from escalation_trends.report.aggregate import GroupSummary
from escalation_trends.report.llm import LLMClient, LLMError

MOCK_INSIGHTS = "\n".join(
    [
        "- Data entry inconsistencies are the most frequent driver, followed by human "
        "mistakes and tool limitations.",
        "- Onboarding gaps and incorrect inputs appear at comparable rates, suggesting "
        "clearer guidance is needed.",
        "- Confidence is typically higher on human error cases, indicating they are "
        "easier to identify and prevent.",
        "- Tool limitation tickets show lower confidence, implying ambiguity or "
        "multi-causal issues.",
        "- Focus areas for improvement include data hygiene, onboarding guidance, and "
        "targeted fixes to tooling.",
    ]
)
NO_CREDENTIAL_TEMPLATE = "⚠️ No API key found in environment variable ({env_var})."
FAILURE_TEMPLATE = "⚠️ Model insights failed: {detail}"


def build_insight_prompt(groups: Sequence[GroupSummary], days_back: int) -> str:
    bullets = "\n".join(
        f"{group.key}: {group.count} tickets, avg confidence {group.avg}%"
        for group in groups
    )
    return (
        "You are summarizing support escalation trends.\n\n"
        f"Root causes from the past {days_back} days:\n"
        f"{bullets}\n\n"
        "Provide 3 to 5 concise bullets suitable for a weekly business review:\n"
        "- Process gaps\n"
        "- Suggested improvements\n"
        "- Actionable follow ups"
    )


def compose_insights(
    root_cause_groups: Sequence[GroupSummary],
    client: Optional[LLMClient],
    *,
    mock_if_no_credential: bool = True,
    days_back: int = 30,
    temperature: float = 0.5,
    env_var: str = "OPENAI_API_KEY",
    logger: Optional[logging.Logger] = None,
) -> str:
    """Return the narrative digest for the root-cause groups.

    ``client`` is None when no credential is configured. The canned text
    does not depend on the groups.
    """
    if client is None:
        if mock_if_no_credential:
            return MOCK_INSIGHTS
        return NO_CREDENTIAL_TEMPLATE.format(env_var=env_var)

    prompt = build_insight_prompt(root_cause_groups, days_back)
    try:
        return client.text_complete(prompt, temperature=temperature).strip()
    except LLMError as exc:
        if logger:
            logger.warning("Insight generation failed: %s", exc)
        return FAILURE_TEMPLATE.format(detail=exc)


__all__ = [
    "FAILURE_TEMPLATE",
    "MOCK_INSIGHTS",
    "NO_CREDENTIAL_TEMPLATE",
    "build_insight_prompt",
    "compose_insights",
]
