"""Utilities shared across the GameLift server SDK."""
