"""
Decibel Meter
Sampling Session (ciclo de amostragem + máquina de estados)

Responsabilidade:
- Abrir o microfone num thread próprio (uma AudioSource por execução)
- Ciclo fixo: ler frame -> calcular dB -> publicar (leitura, alerta) -> dormir
- Detetar passagens do limiar (alerta ligado/desligado)
- start / stop / cancel seguros a partir de outro thread (ex.: UI)

Estados:
    IDLE -> STARTING -> RUNNING -> STOPPING -> IDLE
    IDLE -> STARTING -> FAILED
    RUNNING -> STOPPING -> FAILED   (erro terminal dentro do ciclo)
    FAILED -> STARTING              (novo start limpa o erro anterior)

Notas:
- Só o thread de amostragem toca na AudioSource e escreve no sink.
- Todas as saídas do ciclo passam pelo mesmo bloco de limpeza:
  fechar o microfone -> reportar erro -> estado terminal.
- Um único microfone por processo: duas sessões nunca o abrem ao mesmo tempo.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Optional, Union

import numpy as np

from .audio_source import AudioConfig, BaseAudioSource, create_audio_source
from .config import CONFIG
from .errors import (
    DeviceReadFailed,
    InitializationFailed,
    MeterError,
    PermissionDenied,
    SessionBusy,
    TransientReadError,
    UnexpectedFailure,
    describe,
)
from .level_estimator import estimate_level
from .sinks import NullReadingSink, ReadingSink

log = logging.getLogger("DecibelMeter.Session")

Permission = Union[bool, Callable[[], bool]]
SourceFactory = Callable[[AudioConfig], BaseAudioSource]
Estimator = Callable[[np.ndarray], float]


class SessionState(Enum):
    IDLE = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    FAILED = auto()


ACTIVE_STATES = (SessionState.STARTING, SessionState.RUNNING, SessionState.STOPPING)
TERMINAL_STATES = (SessionState.IDLE, SessionState.FAILED)


@dataclass(frozen=True)
class DecibelReading:
    value: float
    alert: bool
    sequence: int = 0


def is_alert(value: float, threshold: float) -> bool:
    # Estritamente acima: igual ao limiar não dispara
    return value > threshold


@dataclass
class SessionConfig:
    audio: AudioConfig = field(default_factory=AudioConfig)
    threshold_db: float = CONFIG.THRESHOLD_DB
    cadence_ms: int = CONFIG.CADENCE_MS
    cancel_grace_s: float = CONFIG.CANCEL_GRACE_S
    log_every_n_reads: int = CONFIG.LOG_EVERY_N_READS
    max_consecutive_read_errors: Optional[int] = CONFIG.MAX_CONSECUTIVE_READ_ERRORS

    def __post_init__(self) -> None:
        limit = self.max_consecutive_read_errors
        if limit is not None and limit < 1:
            raise ValueError(f"max_consecutive_read_errors tem de ser >= 1 ou None (recebido {limit})")

    @property
    def cadence_s(self) -> float:
        return max(0.0, self.cadence_ms / 1000.0)


@dataclass
class SessionStats:
    frames_read: int = 0
    readings_published: int = 0
    read_errors: int = 0
    overflows: int = 0


# Partilhado por todas as sessões do processo
_MICROPHONE_LOCK = threading.Lock()


def _permission_granted(permission: Permission) -> bool:
    if callable(permission):
        return bool(permission())
    return bool(permission)


class SessionHandle:
    """
    Token de cancelamento de uma execução.
    cancel() só devolve depois de o microfone estar libertado
    (ou ao fim do período de tolerância).
    """

    def __init__(self, session: "SamplingSession", run_id: int):
        self._session = session
        self.run_id = run_id
        self._cancel = threading.Event()
        self._done = threading.Event()
        # Partilhado com a publicação: depois de cancel() marcar, nada mais sai
        self._publish_lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def cancel(self, timeout: Optional[float] = None) -> bool:
        # Sem lock: o ciclo volta a ver a flag antes de cada publicação
        self._cancel.set()

        # Chamado de dentro do próprio ciclo (ex.: pelo sink): só marca
        if self._thread is threading.current_thread():
            return self._done.is_set()

        grace = self._session.config.cancel_grace_s if timeout is None else timeout
        deadline = time.monotonic() + grace

        # Espera que uma publicação em curso acabe, mas nunca para além do prazo
        if self._publish_lock.acquire(timeout=max(0.0, grace)):
            self._publish_lock.release()

        finished = self._done.wait(max(0.0, deadline - time.monotonic()))
        if not finished:
            log.warning("Sessão #%d não terminou em %.2fs após cancel.", self.run_id, grace)
        return finished


class SamplingSession:
    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        sink: Optional[ReadingSink] = None,
        source_factory: Optional[SourceFactory] = None,
        estimator: Optional[Estimator] = None,
        device_lock: Optional[threading.Lock] = None,
    ):
        self.config = config or SessionConfig()
        self.sink: ReadingSink = sink or NullReadingSink()
        self._source_factory: SourceFactory = source_factory or create_audio_source
        self._estimator: Estimator = estimator or estimate_level
        self._device_lock = device_lock or _MICROPHONE_LOCK

        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._handle: Optional[SessionHandle] = None
        self._run_id = 0

        self._last_error: Optional[MeterError] = None
        self._last_reading = DecibelReading(0.0, False, 0)
        self._stats = SessionStats()
        self._alert_active = False

    # ---------- Estado exposto ----------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_error(self) -> Optional[MeterError]:
        return self._last_error

    @property
    def last_reading(self) -> DecibelReading:
        return self._last_reading

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def handle(self) -> Optional[SessionHandle]:
        return self._handle

    def is_running(self) -> bool:
        return self._state == SessionState.RUNNING

    # ---------- Controlo ----------

    def start(self, permission: Permission = True) -> SessionHandle:
        with self._lock:
            if self._state in ACTIVE_STATES:
                raise SessionBusy("A sessão já está ativa; faz stop() primeiro")

            if not _permission_granted(permission):
                self._last_error = PermissionDenied("Permissão do microfone negada")
                self._state = SessionState.FAILED
                log.warning("Start recusado: sem permissão do microfone.")
                raise self._last_error

            if not self._device_lock.acquire(blocking=False):
                raise SessionBusy("O microfone está a ser usado por outra sessão")

            self._run_id += 1
            handle = SessionHandle(self, self._run_id)
            self._handle = handle
            self._last_error = None
            self._last_reading = DecibelReading(0.0, False, 0)
            self._stats = SessionStats()
            self._alert_active = False
            self._state = SessionState.STARTING

            thread = threading.Thread(
                target=self._run,
                args=(handle, permission),
                name=f"DecibelMeter-Session-{handle.run_id}",
                daemon=True,
            )
            handle._thread = thread

            try:
                thread.start()
            except RuntimeError as e:
                self._device_lock.release()
                self._state = SessionState.FAILED
                self._last_error = UnexpectedFailure(describe(e))
                raise self._last_error from e

        log.info("Sessão #%d a iniciar (threshold=%.1f, cadência=%dms).",
                 handle.run_id, self.config.threshold_db, self.config.cadence_ms)
        return handle

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Idempotente: numa sessão parada não faz nada."""
        with self._lock:
            handle = self._handle
            state = self._state

        if handle is None or state in TERMINAL_STATES:
            return True

        log.info("Sessão #%d parada pelo utilizador.", handle.run_id)
        return handle.cancel(timeout)

    def wait(self, timeout: Optional[float] = None) -> bool:
        handle = self._handle
        if handle is None:
            return True
        return handle.wait(timeout)

    # ---------- Internals ----------

    def _set_state(self, state: SessionState) -> None:
        with self._lock:
            self._state = state
        log.debug("Estado da sessão -> %s", state.name)
        self._notify(self.sink.on_state_changed, state)

    def _notify(self, fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception:
            log.exception("Sink falhou ao receber %s.", getattr(fn, "__name__", fn))

    def _run(self, handle: SessionHandle, permission: Permission) -> None:
        source: Optional[BaseAudioSource] = None
        opened = False
        error: Optional[MeterError] = None

        try:
            self._notify(self.sink.on_state_changed, SessionState.STARTING)

            try:
                source = self._source_factory(self.config.audio)
                source.open()
            except MeterError as e:
                error = e
            except PermissionError as e:
                error = PermissionDenied(describe(e))
            except Exception as e:
                error = InitializationFailed(describe(e))
            else:
                opened = True

            if opened and not handle.cancelled:
                self._set_state(SessionState.RUNNING)
                log.info("Gravação iniciada (frame=%d amostras).", source.frame_size)
                self._loop(handle, source, permission)

        except MeterError as e:
            error = e
        except PermissionError as e:
            error = PermissionDenied(describe(e))
        except Exception as e:
            log.exception("Exceção no ciclo de gravação: %s", e)
            error = UnexpectedFailure(describe(e))
        finally:
            self._finish(handle, source if opened else None, error)

    def _loop(self, handle: SessionHandle, source: BaseAudioSource, permission: Permission) -> None:
        cfg = self.config
        frame_size = source.frame_size
        consecutive_errors = 0
        sequence = 0

        while not handle.cancelled:
            if callable(permission) and not _permission_granted(permission):
                raise PermissionDenied("Permissão do microfone revogada")

            result = source.read_frame(frame_size)

            if handle.cancelled:
                break

            if not result.ok:
                consecutive_errors += 1
                self._stats.read_errors += 1
                transient = TransientReadError(f"Erro ao ler áudio: {result.count} ({result.error})")
                log.error("%s", transient.message)

                limit = cfg.max_consecutive_read_errors
                if limit is not None and consecutive_errors >= limit:
                    raise DeviceReadFailed(
                        f"{consecutive_errors} leituras seguidas falharam; última: {result.error}"
                    )
            else:
                consecutive_errors = 0
                self._stats.frames_read += 1
                if result.overflowed:
                    self._stats.overflows += 1

                value = float(self._estimator(result.samples[:result.count]))

                with handle._publish_lock:
                    if handle.cancelled:
                        break
                    sequence += 1
                    reading = DecibelReading(value, is_alert(value, cfg.threshold_db), sequence)
                    self._last_reading = reading
                    self.sink.on_reading(reading)
                    self._stats.readings_published += 1

                    if reading.alert != self._alert_active:
                        self._alert_active = reading.alert
                        self.sink.on_alert_changed(reading.alert)

                if cfg.log_every_n_reads and self._stats.frames_read % cfg.log_every_n_reads == 0:
                    log.debug("Lidas %d amostras, dB: %.1f", result.count, value)

            handle._cancel.wait(cfg.cadence_s)

    def _finish(
        self,
        handle: SessionHandle,
        source: Optional[BaseAudioSource],
        error: Optional[MeterError],
    ) -> None:
        try:
            if source is not None:
                self._set_state(SessionState.STOPPING)
                try:
                    source.close()
                    log.debug("AudioSource fechada.")
                except Exception as e:
                    log.error("Erro ao fechar o microfone: %s", e)
        finally:
            self._device_lock.release()

            if self._alert_active:
                self._alert_active = False
                self._notify(self.sink.on_alert_changed, False)

            if error is not None:
                self._last_error = error
                log.error("Sessão #%d terminou com erro: %s", handle.run_id, error.message)
                self._notify(self.sink.on_error, error)
                self._set_state(SessionState.FAILED)
            else:
                log.info("Sessão #%d terminada (%d leituras, %d erros de leitura).",
                         handle.run_id, self._stats.readings_published, self._stats.read_errors)
                self._set_state(SessionState.IDLE)

            handle._done.set()
