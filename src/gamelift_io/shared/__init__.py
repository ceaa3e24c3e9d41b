"""Pieces shared between the server state and its channels."""
