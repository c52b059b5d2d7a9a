"""Prompt template catalog."""
