"""Channels that connect a game server process to the GameLift proxy."""
