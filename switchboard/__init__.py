"""Switchboard: conversation orchestration across a fixed chain of AI providers."""

__version__ = "0.1.0"
