"""Runnable demo programs."""
