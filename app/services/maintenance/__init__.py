"""Periodic data retention."""
