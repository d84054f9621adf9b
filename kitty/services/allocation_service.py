"""
Allocation engine for splitting a shared cost across weighted participants.

A participant's weight is either the number of units (games) they used or
one head for themselves plus one per guest they brought. The description
written for each share doubles as a human-readable record of the
allocation parameters, so it has to round-trip through the parsers below.
"""
import re
import logging
from typing import Any, Dict, Hashable, Optional

from kitty.core.utils import parse_amount

logger = logging.getLogger(__name__)

UNIT_GUESTS = "guests"
UNIT_GAMES = "games"

_TOTAL_PATTERN = re.compile(r"\(total \$(\d+(?:\.\d+)?)\)")
_GUESTS_PATTERN = re.compile(r"\[(\d+) guests?\]")
_GAMES_PATTERN = re.compile(r"\[(\d+(?:\.\d+)?) games?\]")


def allocate(total_cost: Any, weights: Dict[Hashable, float]) -> Dict[Hashable, float]:
    """
    Split ``total_cost`` proportionally to ``weights``.

    Participants with a non-positive weight take no share. Returns an empty
    mapping (nothing to write) when the cost is not a positive number or no
    participant carries weight. Shares are left unrounded.
    """
    cost = parse_amount(total_cost)
    if cost is None or cost <= 0:
        logger.debug(f"Skipping allocation for invalid total cost: {total_cost!r}")
        return {}

    active = {}
    for participant, weight in (weights or {}).items():
        value = parse_amount(weight)
        if value is not None and value > 0:
            active[participant] = value

    total_weight = sum(active.values())
    if total_weight <= 0:
        logger.debug("Skipping allocation: no participant has a positive weight")
        return {}

    per_unit_cost = cost / total_weight
    return {participant: per_unit_cost * weight for participant, weight in active.items()}


def split_weight(guests: Optional[int]) -> float:
    """Weight for a cost split by heads: the member plus their guests."""
    return 1.0 + max(int(guests or 0), 0)


def usage_weight(units: Optional[int]) -> float:
    """Weight for a cost-per-use charge: the units played."""
    return float(max(int(units or 0), 0))


def weight_for(unit: str, count: Optional[int]) -> float:
    """Weight from a caller-supplied count in the given unit."""
    if unit == UNIT_GAMES:
        return usage_weight(count)
    return split_weight(count)


def format_amount(value: float) -> str:
    """Format an amount as ``100`` or ``12.5`` (at most two decimals)."""
    rounded = round(float(value), 2)
    if rounded == int(rounded):
        return str(int(rounded))
    return f"{rounded:.2f}".rstrip("0").rstrip(".")


def describe_share(
    label: str,
    total_cost: float,
    weight: float,
    unit: str = UNIT_GUESTS,
    cash_share: Optional[float] = None
) -> str:
    """
    Build the description for one participant's share.

    ``"shared cost (total $100) [2 guests]"`` for a split with guests,
    ``"bowling (total $90) [3 games]"`` for a usage charge. A share paid in
    cash outside the pool is noted with ``" (cash $<share>)"``.
    """
    description = f"{label} (total ${format_amount(total_cost)})"
    if unit == UNIT_GAMES:
        games = format_amount(weight)
        description += f" [{games} {'game' if games == '1' else 'games'}]"
    else:
        guests = int(round(weight)) - 1
        if guests > 0:
            description += f" [{guests} {'guest' if guests == 1 else 'guests'}]"
    if cash_share is not None:
        description += f" (cash ${format_amount(cash_share)})"
    return description


def parse_total(description: Optional[str]) -> Optional[float]:
    """Recover the batch total from a ``"(total $<amount>)"`` fragment."""
    if not description:
        return None
    match = _TOTAL_PATTERN.search(description)
    if not match:
        return None
    return float(match.group(1))


def parse_weight(description: Optional[str]) -> Optional[float]:
    """
    Recover a participant's weight from their share description.

    ``[n guests]`` gives ``1 + n`` and ``[n games]`` gives ``n``. Returns None
    when neither fragment is present.
    """
    if not description:
        return None
    games = _GAMES_PATTERN.search(description)
    if games:
        return float(games.group(1))
    guests = _GUESTS_PATTERN.search(description)
    if guests:
        return split_weight(int(guests.group(1)))
    return None
