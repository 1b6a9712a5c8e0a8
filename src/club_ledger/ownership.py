"""Apportion the pooled fund between members."""
from __future__ import annotations

from typing import Iterable

from .models import Contribution, MemberShare


def member_capital(member_id: str, contributions: Iterable[Contribution]) -> float:
    return sum(
        (float(item.amount) for item in contributions if item.member_id == member_id), 0.0
    )


def apportion(
    member_id: str,
    contributions: Iterable[Contribution],
    total_capital: float,
    total_current_value: float,
) -> MemberShare:
    """Compute one member's share of the group value.

    Shares are proportional to lifetime contributed capital only. When the
    money went in is not taken into account.
    """

    capital = member_capital(member_id, contributions)
    fraction = capital / total_capital if total_capital > 0 else 0.0
    current_value = total_current_value * fraction
    return MemberShare(
        member_id=member_id,
        contributed_capital=capital,
        share_fraction=fraction,
        current_value=current_value,
        profit=current_value - capital,
    )


def apportion_all(
    contributions: Iterable[Contribution],
    total_capital: float,
    total_current_value: float,
) -> list[MemberShare]:
    """Shares for every member with at least one contribution, by member id."""

    rows = list(contributions)
    member_ids = sorted({item.member_id for item in rows})
    return [apportion(member_id, rows, total_capital, total_current_value) for member_id in member_ids]


__all__ = ["apportion", "apportion_all", "member_capital"]
