"""
personaflux — Personality Evolution Engine

Computes how an agent's ten-dimensional personality drifts in response to a
stream of classified interaction events.
"""

__version__ = "0.1.0"
