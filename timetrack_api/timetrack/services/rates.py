"""
Hourly rate and currency resolution for time logs.

The rate a member earns on a project comes from the team entry linking the
project owner (team leader) to that member. The owner's own time is billed at
the owner's personal rate.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, Optional
from uuid import UUID

DEFAULT_CURRENCY = "USD"
CENTS = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce numbers (and None) to Decimal without float artefacts."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value: Any) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


# PUBLIC_INTERFACE
def member_hourly_rate(project, member_id: UUID, team_entry=None) -> Decimal:
    """
    Rate for member_id on project.

    Parameters:
        project: Project with `user_id` and loaded `owner`
        member_id: user whose time is being priced
        team_entry: Team row for (project.user_id, member_id), or None
    Returns:
        Decimal rate; 0 when there is no entry or the entry is non-monetary.
    """
    if project.user_id == member_id:
        owner = getattr(project, "owner", None)
        return to_decimal(getattr(owner, "hourly_rate", None))
    if team_entry is None or team_entry.non_monetary:
        return Decimal("0")
    return to_decimal(team_entry.hourly_rate)


# PUBLIC_INTERFACE
def log_currency(team_entry=None, user=None) -> str:
    """Currency for a new log: team entry, then user, then USD."""
    if team_entry is not None and team_entry.currency:
        return team_entry.currency
    if user is not None and getattr(user, "currency", None):
        return user.currency
    return DEFAULT_CURRENCY


# PUBLIC_INTERFACE
def amounts_by_currency(logs: Iterable[Any], rate_for: Callable[[Any], Optional[Decimal]]) -> Dict[str, float]:
    """Sum duration * rate per log currency, rounding each total to 2 dp."""
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    for log in logs:
        rate = to_decimal(rate_for(log))
        if not rate:
            continue
        totals[log.currency or DEFAULT_CURRENCY] += to_decimal(log.duration) * rate
    return {currency: float(quantize(amount)) for currency, amount in totals.items()}
