"""Round domain services: clock, shuffle, round state, answers, scoring.

This package contains the game mechanics that HTTP routes, socket
handlers and observer clients import, keeping transport concerns
separated from the round state machine.
"""
