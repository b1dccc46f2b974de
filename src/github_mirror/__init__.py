"""GitHub Mirror - durable, rate-limit-aware mirror of GitHub repository state."""

__version__ = "0.1.0"
