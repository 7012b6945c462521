"""plugsync - declarative plugin reconciliation for zsh."""

__version__ = "0.1.0"
