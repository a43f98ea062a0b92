"""
Decibel Meter
Level Estimator

Responsabilidade:
- Converter um frame de amostras PCM 16-bit numa leitura em "dB" de ecrã (0..100)

Notas:
- Função pura: sem estado, sem I/O (só log de debug).
- O valor NÃO é SPL real: referência = 1.0 de amplitude, +10 de offset e clamp 0..100.
  É a escala do medidor e tem de ser mantida tal e qual.
"""

from __future__ import annotations

import logging
import math

import numpy as np

log = logging.getLogger("DecibelMeter.LevelEstimator")

# Abaixo disto estamos no ruído de quantização -> 0.0 sem passar pelo log10
SILENCE_RMS = 1.0

DISPLAY_OFFSET_DB = 10.0
DISPLAY_MIN_DB = 0.0
DISPLAY_MAX_DB = 100.0


def frame_rms(samples) -> float:
    """RMS do frame, com acumulação em 64-bit (quadrados de int16 chegam a ~1.07e9)."""
    x = np.asarray(samples, dtype=np.int64)
    if x.size == 0:
        return 0.0
    mean_square = float(np.sum(np.square(x), dtype=np.int64)) / x.size
    return math.sqrt(mean_square)


def normalize_db(db_raw: float) -> float:
    return min(DISPLAY_MAX_DB, max(DISPLAY_MIN_DB, db_raw + DISPLAY_OFFSET_DB))


def estimate_level(samples) -> float:
    rms = frame_rms(samples)

    # Evitar log(0)
    if rms < SILENCE_RMS:
        return 0.0

    db_raw = 20.0 * math.log10(rms / 1.0)
    reading = normalize_db(db_raw)

    log.debug("RMS=%.2f | dB=%.2f | normalizado=%.2f", rms, db_raw, reading)
    return reading
