"""Dine-in tab management."""
