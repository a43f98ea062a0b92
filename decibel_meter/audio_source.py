"""
Decibel Meter
Audio Source (microfone)

Responsabilidade:
- Abrir o microfone com formato fixo (44100 Hz, mono, PCM 16-bit)
- Entregar frames de tamanho fixo a pedido (leitura bloqueante)
- Libertar o dispositivo de forma determinística (close idempotente)

Notas:
- Não grava ficheiros.
- Uma leitura falhada é devolvida como valor (count <= 0), nunca como exceção.
- O sounddevice só é importado ao abrir o stream: o resto do pacote importa
  sem PortAudio instalado.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import numpy as np

from .config import CONFIG
from .errors import InitializationFailed, PermissionDenied, describe

log = logging.getLogger("DecibelMeter.AudioSource")

# Buffer mínimo quando o dispositivo reporta latência 0 / absurda
MIN_BUFFER_FRAMES = 256


@dataclass
class AudioConfig:
    sample_rate: int = CONFIG.SAMPLE_RATE
    channels: int = CONFIG.CHANNELS
    bits_per_sample: int = CONFIG.BITS_PER_SAMPLE
    buffer_multiplier: int = CONFIG.BUFFER_MULTIPLIER
    device: Optional[Union[int, str]] = None   # None = microfone por defeito

    @property
    def bytes_per_sample(self) -> int:
        return self.bits_per_sample // 8


@dataclass
class FrameRead:
    samples: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int16))
    count: int = 0
    overflowed: bool = False
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.count > 0

    @classmethod
    def failed(cls, error: str, code: int = -1) -> "FrameRead":
        return cls(count=code, error=error or "erro de leitura")


def buffer_geometry(cfg: AudioConfig, min_frames: int) -> Tuple[int, int]:
    """
    Devolve (buffer_bytes, frame_samples).

    buffer_bytes = mínimo do dispositivo (em bytes) x multiplicador
    frame_samples = buffer_bytes / 2 (um frame ocupa o buffer inteiro)
    """
    min_frames = max(int(min_frames), MIN_BUFFER_FRAMES)
    min_bytes = min_frames * cfg.channels * cfg.bytes_per_sample
    buffer_bytes = min_bytes * max(1, int(cfg.buffer_multiplier))
    return buffer_bytes, buffer_bytes // 2


class BaseAudioSource:
    def open(self) -> None:
        raise NotImplementedError

    @property
    def frame_size(self) -> int:
        raise NotImplementedError

    def read_frame(self, max_samples: int) -> FrameRead:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self) -> "BaseAudioSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class NullAudioSource(BaseAudioSource):
    """Sem backend de áudio: open falha sempre, close nunca falha."""

    def __init__(self, reason: str = "Nenhum backend de áudio disponível"):
        self.reason = reason

    def open(self) -> None:
        raise InitializationFailed(self.reason)

    @property
    def frame_size(self) -> int:
        return 0

    def read_frame(self, max_samples: int) -> FrameRead:
        return FrameRead.failed("dispositivo não aberto")

    def close(self) -> None:
        return None


class SoundDeviceSource(BaseAudioSource):
    def __init__(self, cfg: Optional[AudioConfig] = None):
        self.cfg = cfg or AudioConfig()

        self._sd = None
        self._stream = None
        self._lock = threading.Lock()
        self._frame_size = 0
        self.buffer_bytes = 0
        self.overflows = 0

    # ---------- Lifecycle ----------

    def open(self) -> None:
        if self.cfg.channels != 1:
            raise InitializationFailed(f"Apenas mono é suportado (channels={self.cfg.channels})")
        if self.cfg.bits_per_sample != 16:
            raise InitializationFailed(f"Apenas PCM 16-bit é suportado (bits={self.cfg.bits_per_sample})")

        with self._lock:
            if self._stream is not None:
                return

            try:
                import sounddevice as sd  # type: ignore
            except (ImportError, OSError) as e:
                raise InitializationFailed(f"sounddevice/PortAudio não disponível: {describe(e)}") from e
            self._sd = sd

            try:
                info = sd.query_devices(self.cfg.device, kind="input")
                low_latency = float(info.get("default_low_input_latency") or 0.0)
                min_frames = math.ceil(low_latency * self.cfg.sample_rate)
                self.buffer_bytes, self._frame_size = buffer_geometry(self.cfg, min_frames)
                capacity_frames = self.buffer_bytes // (self.cfg.channels * self.cfg.bytes_per_sample)

                log.info(
                    "A abrir microfone '%s' (sr=%d, buffer=%d bytes, frame=%d amostras).",
                    info.get("name", "?"), self.cfg.sample_rate, self.buffer_bytes, self._frame_size,
                )

                stream = sd.InputStream(
                    samplerate=self.cfg.sample_rate,
                    channels=self.cfg.channels,
                    dtype="int16",
                    device=self.cfg.device,
                    latency=capacity_frames / float(self.cfg.sample_rate),
                )
                try:
                    stream.start()
                except BaseException:
                    stream.close()
                    raise
            except PermissionError as e:
                raise PermissionDenied(describe(e)) from e
            except (sd.PortAudioError, ValueError) as e:
                raise InitializationFailed(describe(e)) from e

            self._stream = stream

    def close(self) -> None:
        with self._lock:
            stream = self._stream
            self._stream = None

        if stream is None:
            return

        try:
            stream.stop()
        except Exception as e:
            log.warning("Erro ao parar o stream: %s", e)
        finally:
            try:
                stream.close()
            except Exception as e:
                log.warning("Erro ao fechar o stream: %s", e)

        log.info("Microfone libertado.")

    # ---------- Leitura ----------

    @property
    def frame_size(self) -> int:
        return self._frame_size

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def read_frame(self, max_samples: int) -> FrameRead:
        stream = self._stream
        if stream is None:
            return FrameRead.failed("dispositivo não aberto")

        n = max(1, min(int(max_samples), self._frame_size or int(max_samples)))
        try:
            data, overflowed = stream.read(n)
        except self._sd.PortAudioError as e:
            return FrameRead.failed(describe(e))

        # data: shape (frames, channels)
        samples = np.squeeze(np.asarray(data), axis=1) if np.ndim(data) == 2 else np.asarray(data)
        samples = samples.astype(np.int16, copy=True)

        if overflowed:
            self.overflows += 1
            log.debug("Overflow no buffer de entrada (total=%d).", self.overflows)

        if samples.size == 0:
            return FrameRead.failed("leitura vazia", code=0)

        return FrameRead(samples=samples, count=int(samples.size), overflowed=bool(overflowed))


def create_audio_source(cfg: Optional[AudioConfig] = None) -> BaseAudioSource:
    """
    Factory: cria a fonte de áudio para uma sessão (uma instância por execução).
    Sem sounddevice/PortAudio devolve a NullAudioSource (open falha com o motivo).
    """
    try:
        import sounddevice  # noqa: F401  # type: ignore
    except (ImportError, OSError) as e:
        log.warning("sounddevice não disponível (%s). Fallback para NULL.", e)
        return NullAudioSource(f"sounddevice/PortAudio não disponível: {describe(e)}")

    return SoundDeviceSource(cfg or AudioConfig())


def list_input_devices() -> List[Tuple[int, str, float]]:
    """(índice, nome, taxa por defeito) de cada dispositivo com canais de entrada."""
    import sounddevice as sd  # type: ignore

    devices = []
    for idx, dev in enumerate(sd.query_devices()):
        if dev.get("max_input_channels", 0) > 0:
            devices.append((idx, str(dev.get("name", "?")), float(dev.get("default_samplerate", 0.0))))
    return devices
