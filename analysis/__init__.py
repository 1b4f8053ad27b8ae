"""
Analysis Engine Module

Orchestrates indicator computation over stored market data:
- Feature pipeline (tiered routing of indicator rows)
- Derived analytics (Sharpe, volatility, drawdown, beta vs benchmark)
- Daily feature snapshots and flattened metrics
- Cross-sectional correlation matrix
"""

__version__ = "0.1.0"
