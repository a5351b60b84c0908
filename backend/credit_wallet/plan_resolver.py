"""
Plan Resolver - Derives credit allotments from plan names

Plan names are encoded by the pricing page as "<Tier>_<period>_<credits>",
for example "Standard_Monthly_5,000" or "Enterprise_Yearly_Unlimited".

Rules:
- The trailing token after the last underscore carries the credits
- "unlimited" (any case) maps to the Unlimited sentinel
- A plan that cannot be parsed grants 0 credits
"""

import logging
from typing import Optional, Union

from .config import UNLIMITED

logger = logging.getLogger(__name__)


def parse_credits_from_plan(plan_name: Optional[str]) -> Optional[Union[int, str]]:
    """
    Parse the credit allotment from a plan name.

    Returns:
        int credits, the UNLIMITED sentinel, or None if the plan carries no credits
    """
    if not plan_name or not isinstance(plan_name, str):
        return None

    raw_credits = plan_name.split("_")[-1].strip()
    if not raw_credits:
        return None

    if raw_credits.lower() == "unlimited":
        return UNLIMITED

    try:
        return int(raw_credits.replace(",", ""))
    except ValueError:
        logger.warning(f"Plan name has no numeric credit suffix: {plan_name}")
        return None


def normalize_credits_for_storage(credits: Optional[Union[int, str]]) -> Union[int, str]:
    """Normalize parsed credits to what is stored on the client document."""
    if credits == UNLIMITED:
        return UNLIMITED
    if credits is None:
        return 0
    return int(credits)


def credits_for_plan(plan_name: Optional[str]) -> Union[int, str]:
    """Initial (and starting remaining) credits for a plan."""
    return normalize_credits_for_storage(parse_credits_from_plan(plan_name))


def is_unlimited(value) -> bool:
    return isinstance(value, str) and value.lower() == UNLIMITED.lower()


def parse_credit_value(raw) -> Union[int, str]:
    """
    Parse an admin-supplied credit value.

    Accepts "Unlimited" in any case or a non-negative integer (or numeric string).
    Raises ValueError for anything else.
    """
    if is_unlimited(raw):
        return UNLIMITED
    if isinstance(raw, bool):
        raise ValueError("Invalid remainingCredits")
    try:
        value = int(str(raw).replace(",", "").strip())
    except (TypeError, ValueError):
        raise ValueError("Invalid remainingCredits")
    if value < 0:
        raise ValueError("Invalid remainingCredits")
    return value


def plan_display_name(plan_name: Optional[str]) -> str:
    """Human readable tier name (text before the first underscore)."""
    if not plan_name:
        return ""
    return plan_name.split("_")[0]
