"""
Indicator parameter handling.
Pure functions for deep merging, alias normalization and name-suffix parsing.
"""

import copy
import re
from typing import Dict, Any, Optional, Tuple


# Single-value keys that are synonyms of each other
ALIAS_KEYS = ('window', 'period')

# Multi-value keys collapsed when a single window/period is requested explicitly
LIST_KEYS = ('windows', 'periods')

_SUFFIX_NAME = re.compile(r'^([a-z][a-z_]*?)_(\d{1,4})$', re.IGNORECASE)


def merge_params(defaults: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep merge overrides over defaults.

    Caller keys win; nested dictionaries merge key by key instead of being
    replaced wholesale. Lists and scalars are replaced. Neither input is mutated.

    Args:
        defaults: Default parameter map
        overrides: Caller supplied parameter map (optional)

    Returns:
        New merged dictionary
    """
    merged = copy.deepcopy(defaults) if defaults else {}
    if not overrides:
        return merged

    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_params(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)

    return merged


def normalize_aliases(
    params: Dict[str, Any],
    explicit: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Cross-populate window/period and collapse window lists after a merge.

    Rules:
    - If only one of window/period is present, the other takes its value.
    - If explicit (the caller's own overrides) names a window or period but
      no windows/periods list, any list key present collapses to that value.

    Args:
        params: Merged parameter map
        explicit: The caller overrides that produced params (optional)

    Returns:
        New normalized dictionary
    """
    result = dict(params)
    explicit = explicit or {}

    if result.get('window') is not None and result.get('period') is None:
        result['period'] = result['window']
    elif result.get('period') is not None and result.get('window') is None:
        result['window'] = result['period']

    # An explicit window beats an explicit period when both disagree
    requested = explicit.get('window', explicit.get('period'))
    if requested is not None:
        result['window'] = requested
        result['period'] = requested
        for key in LIST_KEYS:
            if key in result and key not in explicit:
                result[key] = [requested]

    return result


def resolve_params(defaults: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge overrides over defaults, then normalize aliases against the overrides."""
    return normalize_aliases(merge_params(defaults, overrides), overrides)


def parse_indicator_name(name: str) -> Tuple[str, Dict[str, Any]]:
    """
    Split a requested indicator name into its base and suffix overrides.

    Examples:
        'sma_50'          -> ('sma', {'window': 50, 'period': 50})
        'rolling_beta_60' -> ('rolling_beta', {'window': 60, 'period': 60})
        'macd'            -> ('macd', {})

    Args:
        name: Requested indicator name

    Returns:
        Tuple of (lowercase base name, per-call parameter overrides)
    """
    cleaned = (name or '').strip().lower()
    match = _SUFFIX_NAME.match(cleaned)
    if not match:
        return cleaned, {}

    suffix = int(match.group(2))
    return match.group(1), {'window': suffix, 'period': suffix}
