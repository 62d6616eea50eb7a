"""
Glyph Resolver - Time to glyph rules for each cell kind
"""
from datetime import datetime

from .cell_settings import BlinkPolicy, CellKind, CellSettings, COLON_KINDS

UNKNOWN_GLYPH = '?'
COLON_GLYPH = ':'
BLANK_GLYPH = ' '

# Tick period per policy; must match the policy's resolution
TICK_INTERVALS = {
    BlinkPolicy.SUB_SECOND: 0.1,
    BlinkPolicy.EVEN_SECOND_PARITY: 1.0,
}


def resolve(
    now: datetime,
    kind: str,
    use_24_hour: bool,
    blink_colons: bool,
    policy: BlinkPolicy = BlinkPolicy.SUB_SECOND
) -> str:
    """
    Get the glyph a cell of the given kind shows at a point in time.

    Args:
        now: Current time
        kind: Cell kind wire string (see CellKind)
        use_24_hour: 24-hour clock instead of 12-hour
        blink_colons: Whether colon cells blink
        policy: Blink policy for colon cells

    Returns:
        One or two characters, or '?' for an unknown kind
    """
    if isinstance(kind, CellKind):
        kind = kind.value

    hours = now.hour
    if not use_24_hour:
        if hours > 12:
            hours -= 12
        elif hours == 0:
            hours = 12

    hours_str = f"{hours:02d}"
    minutes_str = f"{now.minute:02d}"
    seconds_str = f"{now.second:02d}"

    if kind in COLON_KINDS:
        if not blink_colons:
            return COLON_GLYPH
        return COLON_GLYPH if colon_visible(now, policy) else BLANK_GLYPH

    digits = {
        CellKind.HOUR_1.value: hours_str[0],
        CellKind.HOUR_2.value: hours_str[1],
        CellKind.MINUTE_1.value: minutes_str[0],
        CellKind.MINUTE_2.value: minutes_str[1],
        CellKind.SECOND_1.value: seconds_str[0],
        CellKind.SECOND_2.value: seconds_str[1],
        CellKind.FULL_HOUR.value: hours_str,
        CellKind.FULL_MINUTE.value: minutes_str,
        CellKind.FULL_SECOND.value: seconds_str,
    }
    return digits.get(kind, UNKNOWN_GLYPH)


def colon_visible(now: datetime, policy: BlinkPolicy) -> bool:
    """Whether a blinking colon is drawn at this instant"""
    if policy is BlinkPolicy.EVEN_SECOND_PARITY:
        return now.second % 2 == 0
    return now.microsecond < 500_000


def resolve_for(now: datetime, settings: CellSettings, policy: BlinkPolicy) -> str:
    """resolve() using a cell's settings"""
    return resolve(now, settings.kind, settings.use_24_hour, settings.blink_colons, policy)


def tick_interval(policy: BlinkPolicy) -> float:
    """Timer period in seconds for the given blink policy"""
    return TICK_INTERVALS[policy]


def needs_subsecond_refresh(settings: CellSettings, policy: BlinkPolicy) -> bool:
    """True if the cell must be redrawn on every tick, not just on second changes"""
    return settings.is_colon and settings.blink_colons and policy is BlinkPolicy.SUB_SECOND
