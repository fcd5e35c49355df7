"""Swapfund - route selection and swap-then-deposit funding engine."""

__version__ = "0.1.0"
