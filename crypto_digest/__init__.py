"""Daily crypto market digest: CoinGecko data pull plus EMA and correlation signals."""

__version__ = "2.0.0"
