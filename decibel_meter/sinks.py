"""
Decibel Meter
Reading Sinks (consumidores das leituras)

Responsabilidade:
- Receber leituras, mudanças de alerta, mudanças de estado e erros terminais
- Entregar tudo ao consumidor pela ordem em que foi produzido

Notas:
- A sessão chama o sink a partir do thread de amostragem (um único escritor).
- O QueueReadingSink é o canal recomendado: o consumidor (Qt, consola) decide
  em que contexto drena a fila.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterator, Optional, Union

from .errors import MeterError

if TYPE_CHECKING:
    from .session import DecibelReading, SessionState


@dataclass(frozen=True)
class ReadingEvent:
    reading: "DecibelReading"


@dataclass(frozen=True)
class AlertEvent:
    active: bool


@dataclass(frozen=True)
class StateEvent:
    state: "SessionState"


@dataclass(frozen=True)
class ErrorEvent:
    error: MeterError


SinkEvent = Union[ReadingEvent, AlertEvent, StateEvent, ErrorEvent]


class ReadingSink:
    def on_reading(self, reading: "DecibelReading") -> None:
        pass

    def on_alert_changed(self, active: bool) -> None:
        pass

    def on_state_changed(self, state: "SessionState") -> None:
        pass

    def on_error(self, error: MeterError) -> None:
        pass


class NullReadingSink(ReadingSink):
    """Descarta tudo."""


class QueueReadingSink(ReadingSink):
    def __init__(self):
        self._q: "queue.Queue[SinkEvent]" = queue.Queue()

    def on_reading(self, reading: "DecibelReading") -> None:
        self._q.put(ReadingEvent(reading))

    def on_alert_changed(self, active: bool) -> None:
        self._q.put(AlertEvent(active))

    def on_state_changed(self, state: "SessionState") -> None:
        self._q.put(StateEvent(state))

    def on_error(self, error: MeterError) -> None:
        self._q.put(ErrorEvent(error))

    def get(self, timeout: Optional[float] = None) -> Optional[SinkEvent]:
        try:
            return self._q.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> Iterator[SinkEvent]:
        """Devolve os eventos pendentes (FIFO) sem bloquear."""
        while True:
            try:
                yield self._q.get_nowait()
            except queue.Empty:
                return

    def empty(self) -> bool:
        return self._q.empty()


class CallbackReadingSink(ReadingSink):
    """Encaminha para callbacks simples (qualquer um pode ser None)."""

    def __init__(
        self,
        on_reading: Optional[Callable[["DecibelReading"], None]] = None,
        on_alert_changed: Optional[Callable[[bool], None]] = None,
        on_state_changed: Optional[Callable[["SessionState"], None]] = None,
        on_error: Optional[Callable[[MeterError], None]] = None,
    ):
        self._on_reading = on_reading
        self._on_alert_changed = on_alert_changed
        self._on_state_changed = on_state_changed
        self._on_error = on_error

    def on_reading(self, reading: "DecibelReading") -> None:
        if self._on_reading:
            self._on_reading(reading)

    def on_alert_changed(self, active: bool) -> None:
        if self._on_alert_changed:
            self._on_alert_changed(active)

    def on_state_changed(self, state: "SessionState") -> None:
        if self._on_state_changed:
            self._on_state_changed(state)

    def on_error(self, error: MeterError) -> None:
        if self._on_error:
            self._on_error(error)
