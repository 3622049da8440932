"""
Select the single behavioral mode for a request.

Decision table, first match wins:

1. no stored profile                                 -> onboarding
2. first message of the day *and* empty message text -> proactive briefing
3. everything else                                   -> reactive
"""

from doradobet_agent.core.schema import (
    Mode,
    ModeDecision,
    SessionContext,
)


def select_mode(ctx: SessionContext) -> ModeDecision:
    """Return the active :class:`ModeDecision` for *ctx*."""
    if not ctx.has_profile:
        return ModeDecision(
            mode=Mode.ONBOARDING,
            reason="No stored profile; collect name and sports preferences",
        )

    if ctx.is_first_message_of_day and not ctx.message.strip():
        return ModeDecision(
            mode=Mode.PROACTIVE,
            reason="First message of the day with no text; send the morning sports briefing",
        )

    return ModeDecision(
        mode=Mode.REACTIVE,
        reason="Profile present and a message to answer; respond using tools as needed",
    )
