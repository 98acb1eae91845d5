"""Rider delivery flow."""
