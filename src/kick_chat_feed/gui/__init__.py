"""Qt user interface for Kick Chat Feed."""
