"""Site test matrix expansion and reconciliation."""

__version__ = "0.1.0"
