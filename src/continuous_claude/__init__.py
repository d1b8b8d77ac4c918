"""Run an AI coding agent in a loop until the work is done or the budget runs out."""

__version__ = "0.1.0"
