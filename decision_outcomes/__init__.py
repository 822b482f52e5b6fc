"""Monte Carlo evaluation of declarative business decision models."""

__version__ = "0.1.0"
