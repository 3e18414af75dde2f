"""secretscan — find committed secrets in a source tree."""

__version__ = "0.1.0"
