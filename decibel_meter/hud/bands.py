"""
Decibel Meter
Faixas de cor do medidor (sem Qt, para poder ser testado sozinho)
"""

from dataclasses import dataclass

QUIET_DB = 30.0
MODERATE_DB = 60.0


@dataclass(frozen=True)
class Band:
    name: str
    color: str


GREEN = Band("quiet", "#4CAF50")
YELLOW = Band("moderate", "#FFEB3B")
ORANGE = Band("loud", "#FFA500")
RED = Band("alert", "#F44336")


def level_band(db: float, threshold: float) -> Band:
    if db < QUIET_DB:
        return GREEN
    if db < MODERATE_DB:
        return YELLOW
    if db < threshold:
        return ORANGE
    return RED


def meter_fraction(db: float) -> float:
    """Fração 0..1 para a barra de progresso."""
    return min(1.0, max(0.0, db / 100.0))
