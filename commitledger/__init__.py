"""CommitLedger — committed vs. actual focus time, with cloud sync."""

__version__ = "1.1.0"
