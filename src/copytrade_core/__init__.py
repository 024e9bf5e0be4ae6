"""copytrade_core — copy-trading session engine for prediction-market exchanges."""

__version__ = "0.1.0"
