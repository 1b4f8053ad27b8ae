"""
Indicator module registry.
Fixed name -> module table built once; resolves requested names to module instances.
"""

from typing import Dict, Iterable, List, Optional

from indicators.base import BaseIndicator
from indicators.moving_averages import SMAIndicator, EMAIndicator, MACDIndicator
from indicators.oscillators import (
    RSIIndicator, StochasticIndicator, CCIIndicator, MFIIndicator, MomentumIndicator
)
from indicators.performance import DrawdownIndicator, SharpeRatioIndicator, VolatilityIndicator
from indicators.relative import (
    BetaIndicator, RollingBetaIndicator, RollingCorrelationIndicator, R2Indicator
)
from indicators.trend import ATRIndicator, ADXIndicator, BollingerIndicator
from indicators.volume import OBVIndicator, VWAPIndicator


MODULE_CLASSES = (
    SMAIndicator,
    EMAIndicator,
    RSIIndicator,
    MACDIndicator,
    ATRIndicator,
    BollingerIndicator,
    VWAPIndicator,
    RollingCorrelationIndicator,
    RollingBetaIndicator,
    R2Indicator,
    MomentumIndicator,
    StochasticIndicator,
    CCIIndicator,
    ADXIndicator,
    OBVIndicator,
    MFIIndicator,
    BetaIndicator,
    SharpeRatioIndicator,
    DrawdownIndicator,
    VolatilityIndicator,
)

ALIASES = {
    'sharpe_ratio': 'sharpe',
    'bollinger': 'bb',
    'stoch': 'stochastic',
}


class IndicatorRegistry:
    """Stateless lookup of indicator modules by name (case-insensitive)."""

    def __init__(self, modules: Optional[Iterable[BaseIndicator]] = None):
        if modules is None:
            modules = [cls() for cls in MODULE_CLASSES]

        self._modules: Dict[str, BaseIndicator] = {}
        for module in modules:
            if module.name in self._modules:
                raise ValueError(f"Duplicate indicator module name: {module.name}")
            self._modules[module.name] = module

    @property
    def names(self) -> List[str]:
        return list(self._modules)

    def get(self, name: str) -> Optional[BaseIndicator]:
        """Resolve one name (or alias) to a module, or None."""
        key = (name or '').strip().lower()
        key = ALIASES.get(key, key)
        return self._modules.get(key)

    def select(self, names: Iterable[str]) -> List[BaseIndicator]:
        """
        Resolve names to modules.

        Unknown names are omitted; each module appears once, in first-requested order.

        Args:
            names: Requested module names

        Returns:
            List of module instances (possibly empty)
        """
        selected: List[BaseIndicator] = []
        seen = set()
        for name in names:
            module = self.get(name)
            if module is None or module.name in seen:
                continue
            seen.add(module.name)
            selected.append(module)
        return selected

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._modules)
