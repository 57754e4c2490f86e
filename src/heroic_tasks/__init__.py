"""Heroic Tasks: a gamified task tracker engine with a console front end."""

__version__ = "0.1.0"
