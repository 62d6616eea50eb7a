"""
Cell Settings - Per-key settings value object
Handles defaulting and the Stream Deck settings wire format
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional


class CellKind(str, Enum):
    """
    Clock components a cell can show. Values are the wire strings stored
    in the key's settings.
    """

    HOUR_1 = 'hour1'
    HOUR_2 = 'hour2'
    MINUTE_1 = 'minute1'
    MINUTE_2 = 'minute2'
    SECOND_1 = 'second1'
    SECOND_2 = 'second2'
    COLON_1 = 'colon1'
    COLON_2 = 'colon2'
    FULL_HOUR = 'fullHour'
    FULL_MINUTE = 'fullMinute'
    FULL_SECOND = 'fullSecond'


COLON_KINDS = frozenset({CellKind.COLON_1.value, CellKind.COLON_2.value})


class BlinkPolicy(str, Enum):
    """
    When a blinking colon is visible.

    SUB_SECOND: visible for the first 500 ms of every second.
    EVEN_SECOND_PARITY: visible on even seconds, blank on odd ones.
    """

    SUB_SECOND = 'sub-second'
    EVEN_SECOND_PARITY = 'even-second-parity'

    @classmethod
    def parse(cls, value: str) -> 'BlinkPolicy':
        """
        Parse a configured policy name.

        Raises:
            ValueError: If the name is not a known policy
        """
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ', '.join(p.value for p in cls)
            raise ValueError(f"blink policy must be one of: {valid} (got {value!r})") from None


# Wire key -> attribute name
_WIRE_FIELDS = {
    'component': 'kind',
    'format24Hour': 'use_24_hour',
    'blinkColons': 'blink_colons',
    'textColor': 'text_color',
    'backgroundColor': 'background_color',
    'fontSize': 'font_size',
    'fontFamily': 'font_family',
}

DEFAULT_PAYLOAD: Dict[str, Any] = {
    'component': CellKind.HOUR_1.value,
    'format24Hour': False,
    'blinkColons': True,
    'textColor': '#FFFFFF',
    'backgroundColor': '#000000',
    'fontSize': 96,
    'fontFamily': 'Arial',
}


@dataclass(frozen=True)
class CellSettings:
    """
    Fully populated settings of one cell.

    Instances are only created through materialize() or merged(), so no
    field is ever missing once a cell is registered.
    """

    kind: str
    use_24_hour: bool
    blink_colons: bool
    text_color: str
    background_color: str
    font_size: float
    font_family: str

    @classmethod
    def materialize(cls, payload: Optional[Dict[str, Any]] = None) -> 'CellSettings':
        """
        Build settings from a raw host payload, defaulting every unset field.

        Args:
            payload: Settings dict as sent by the host (may be partial or None)

        Returns:
            CellSettings with all fields populated
        """
        values = dict(DEFAULT_PAYLOAD)
        for key, value in (payload or {}).items():
            if key in _WIRE_FIELDS and value is not None:
                values[key] = value
        return cls(**{_WIRE_FIELDS[key]: _coerce(key, value) for key, value in values.items()})

    def merged(self, payload: Optional[Dict[str, Any]]) -> 'CellSettings':
        """
        Overlay the fields present in a partial payload onto these settings.
        Absent fields keep their current value; nothing is re-defaulted.
        """
        changes = {}
        for key, value in (payload or {}).items():
            if key in _WIRE_FIELDS and value is not None:
                changes[_WIRE_FIELDS[key]] = _coerce(key, value)
        if not changes:
            return self
        return replace(self, **changes)

    def to_payload(self) -> Dict[str, Any]:
        """Settings in the host's wire format"""
        return {key: getattr(self, attr) for key, attr in _WIRE_FIELDS.items()}

    @property
    def is_colon(self) -> bool:
        """True for both colon separator kinds"""
        return self.kind in COLON_KINDS


def _coerce(key: str, value: Any) -> Any:
    """Normalise wire values the property inspector may send as strings"""
    if key in ('format24Hour', 'blinkColons'):
        if isinstance(value, str):
            return value.strip().lower() in ('true', '1', 'yes', 'on')
        return bool(value)
    if key == 'fontSize':
        try:
            size = float(value)
        except (TypeError, ValueError):
            return DEFAULT_PAYLOAD['fontSize']
        return int(size) if size.is_integer() else size
    if key == 'component':
        return value.value if isinstance(value, CellKind) else str(value)
    return str(value)
