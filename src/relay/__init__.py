"""Relay: forwards membership and course events to Bento."""
