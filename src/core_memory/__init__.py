"""Core Memory: spaced-repetition name recall for the people you meet."""

__version__ = "0.1.0"
