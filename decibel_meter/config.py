"""
Decibel Meter
Configuração central do sistema.

Objetivo:
- Centralizar parâmetros de captura (taxa, formato, buffer)
- Centralizar o limiar de alerta e a cadência do ciclo de leitura
- Permitir alterações fáceis sem tocar no resto do código
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MeterConfig:
    # Identidade
    APP_NAME: str = "DecibelMeter"
    VERSION: str = "0.1.0"

    # Áudio (mono, PCM 16-bit)
    SAMPLE_RATE: int = 44100
    CHANNELS: int = 1
    BITS_PER_SAMPLE: int = 16

    # Multiplicador sobre o buffer mínimo do dispositivo (evita leituras presas)
    BUFFER_MULTIPLIER: int = 2

    # Alerta: leitura estritamente acima deste valor
    THRESHOLD_DB: float = 75.0

    # Ciclo ler -> calcular -> publicar -> dormir
    CADENCE_MS: int = 50

    # Tempo máximo (segundos) à espera que a sessão liberte o microfone
    CANCEL_GRACE_S: float = 2.0

    # Log de debug a cada N leituras válidas
    LOG_EVERY_N_READS: int = 10

    # None = erros de leitura nunca escalam (só ficam no log)
    MAX_CONSECUTIVE_READ_ERRORS: Optional[int] = None

    # Gate de permissão usado pela HUD/consola (em desktop não há pedido ao SO)
    MIC_PERMISSION_GRANTED: bool = True


CONFIG = MeterConfig()
