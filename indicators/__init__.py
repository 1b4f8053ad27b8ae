"""
Indicator Modules

Pure computations from OHLCV bars to indicator rows:
- Moving averages (SMA, EMA, MACD)
- Oscillators (RSI, Stochastic, CCI, MFI, Momentum)
- Range and trend (ATR, ADX, Bollinger Bands)
- Volume (OBV, VWAP)
- Performance (Drawdown, Sharpe, Volatility)
- Benchmark-relative (Beta, Rolling Beta, Rolling Correlation, R²)
"""

__version__ = "0.1.0"
