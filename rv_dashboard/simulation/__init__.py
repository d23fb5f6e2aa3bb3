"""Simulated sensor feeds.

Trailer level and water tanks have no real sensor yet; these tickers stand in
for them until an MQTT source replaces each one.
"""

from .tickers import LEVEL_DRIFTS, WATER_DRIFTS, FieldDrift, SimulatedDocumentTicker, SimulationManager

__all__ = [
    "FieldDrift",
    "LEVEL_DRIFTS",
    "WATER_DRIFTS",
    "SimulatedDocumentTicker",
    "SimulationManager",
]
