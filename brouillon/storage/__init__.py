"""Local message storage."""
