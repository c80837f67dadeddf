"""Schemas shared across fleet scoring services."""
