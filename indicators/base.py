"""
Core indicator types.
Bar and IndicatorRow records plus the BaseIndicator contract shared by every module.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Sequence, Union

from indicators.params import resolve_params


class IndicatorError(Exception):
    """Raised when an indicator is configured with invalid parameters."""
    pass


@dataclass
class Bar:
    """One OHLCV observation."""
    t: Union[date, datetime]
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume: float = 0.0
    vwap: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Bar':
        """
        Build a Bar from a dictionary.

        Accepts long keys (open, high, ...) or vendor short keys (o, h, l, c, v, vw).
        """
        def pick(long_key: str, short_key: str) -> Any:
            value = data.get(long_key)
            return data.get(short_key) if value is None else value

        volume = pick('volume', 'v')
        return cls(
            t=data['t'],
            open=_optional_float(pick('open', 'o')),
            high=_optional_float(pick('high', 'h')),
            low=_optional_float(pick('low', 'l')),
            close=_optional_float(pick('close', 'c')),
            volume=float(volume) if volume is not None else 0.0,
            vwap=_optional_float(pick('vwap', 'vw'))
        )


@dataclass
class IndicatorRow:
    """One computed indicator value at a timestamp."""
    t: Union[date, datetime]
    indicator: str
    value: Optional[float]
    meta: Optional[Dict[str, Any]] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        return {'t': self.t, 'indicator': self.indicator, 'value': self.value, 'meta': self.meta}


class BaseIndicator:
    """
    Base class for indicator modules.

    Subclasses declare name, display_name, defaults and multi_series, and
    implement compute(). compute() never raises for short or degenerate
    data; it returns an empty list instead.
    """

    name: str = ''
    display_name: str = ''
    defaults: Dict[str, Any] = {}
    multi_series: bool = False
    requires_benchmark: bool = False

    def compute(self, bars: Sequence[Any], params: Optional[Dict[str, Any]] = None) -> List[IndicatorRow]:
        raise NotImplementedError

    def opts(self, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Caller params deep merged over this module's defaults, aliases normalized."""
        return resolve_params(self.defaults, params or {})

    def prepare(self, bars: Sequence[Any]) -> List[Bar]:
        return normalize_bars(bars)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


def normalize_bars(bars: Sequence[Any]) -> List[Bar]:
    """
    Coerce bars to Bar objects sorted ascending by timestamp.

    Bars without a close are dropped. Missing open/high/low fall back to the close.

    Args:
        bars: Bar objects or dictionaries in any order

    Returns:
        New list of Bar objects in chronological order
    """
    normalized = []
    for raw in bars or []:
        bar = raw if isinstance(raw, Bar) else Bar.from_dict(raw)
        if bar.close is None:
            continue
        normalized.append(Bar(
            t=bar.t,
            open=bar.open if bar.open is not None else bar.close,
            high=bar.high if bar.high is not None else bar.close,
            low=bar.low if bar.low is not None else bar.close,
            close=bar.close,
            volume=bar.volume or 0.0,
            vwap=bar.vwap
        ))

    normalized.sort(key=lambda b: _sort_key(b.t))
    return normalized


def positive_int(value: Any, name: str) -> int:
    """
    Validate a window-like parameter.

    Raises:
        IndicatorError: If value is not a positive integer
    """
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise IndicatorError(f"{name} must be a positive integer, got {value!r}")
    if number <= 0 or number != float(value):
        raise IndicatorError(f"{name} must be a positive integer, got {value!r}")
    return number


def window_list(opts: Dict[str, Any], list_key: str, single_key: str) -> List[int]:
    """Resolve a multi-window option to a de-duplicated list of positive ints."""
    raw = opts.get(list_key)
    if raw is None:
        raw = [opts.get(single_key)]
    if not isinstance(raw, (list, tuple)):
        raw = [raw]

    windows = []
    for value in raw:
        window = positive_int(value, list_key)
        if window not in windows:
            windows.append(window)
    return windows


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _sort_key(t: Any) -> datetime:
    # Dates and datetimes compare on a common axis
    if isinstance(t, datetime):
        return t
    if isinstance(t, date):
        return datetime(t.year, t.month, t.day)
    return datetime.fromisoformat(str(t).replace(' ', 'T'))
