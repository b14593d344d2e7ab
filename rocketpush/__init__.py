"""Push-style message consumer core: allocation strategies, statistics, options and consumer logic."""

__version__ = "0.1.0"