import logging

from PySide6 import QtCore, QtWidgets

from .config import CONFIG
from .errors import MeterError
from .hud.meter_overlay import MeterOverlay
from .logging_setup import setup_logging
from .session import SamplingSession, SessionConfig, SessionState
from .sinks import AlertEvent, ErrorEvent, QueueReadingSink, ReadingEvent, StateEvent

log = logging.getLogger("DecibelMeter")


class MeterApp(QtCore.QObject):
    def __init__(self, overlay: MeterOverlay, session_cfg: SessionConfig, source_factory=None):
        super().__init__()
        self.overlay = overlay

        # ---- Sessão (thread de amostragem -> fila -> thread Qt) ----
        self.sink = QueueReadingSink()
        self.session = SamplingSession(session_cfg, sink=self.sink, source_factory=source_factory)

        self.overlay.toggle_requested.connect(self.on_toggle)

        # ---- Timer Qt: drena a fila no thread da UI ----
        self.timer = QtCore.QTimer()
        self.timer.setInterval(session_cfg.cadence_ms)
        self.timer.timeout.connect(self.on_tick)
        self.timer.start()

        app = QtWidgets.QApplication.instance()
        app.aboutToQuit.connect(self.on_quit)

        log.info("%s %s iniciado.", CONFIG.APP_NAME, CONFIG.VERSION)

    # ---------------- Controlo ----------------

    @QtCore.Slot()
    def on_toggle(self) -> None:
        if self.session.state in (SessionState.STARTING, SessionState.RUNNING):
            self.session.stop()
            self.overlay.set_recording(False)
            return

        self.overlay.set_error("")

        # Eventos da execução anterior (ex.: IDLE) não podem chegar à nova
        for _ in self.sink.drain():
            pass

        try:
            self.session.start(CONFIG.MIC_PERMISSION_GRANTED)
        except MeterError as e:
            log.warning("Não foi possível iniciar: %s", e.message)
            self.overlay.set_error(e.message)
            return

        self.overlay.set_recording(True)

    # ---------------- Tick ----------------

    def on_tick(self) -> None:
        for event in self.sink.drain():
            if isinstance(event, ReadingEvent):
                self.overlay.set_level(event.reading.value, event.reading.alert)
            elif isinstance(event, AlertEvent):
                self.overlay.set_alert(event.active)
            elif isinstance(event, ErrorEvent):
                self.overlay.set_error(event.error.message)
            elif isinstance(event, StateEvent):
                if event.state in (SessionState.IDLE, SessionState.FAILED):
                    self.overlay.set_recording(False)

    # ---------------- Quit ----------------

    def on_quit(self) -> None:
        self.timer.stop()
        self.session.stop()
        log.info("Microfone libertado e aplicação a sair.")


def main():
    setup_logging(CONFIG.APP_NAME)
    app = QtWidgets.QApplication([])

    session_cfg = SessionConfig()
    overlay = MeterOverlay(CONFIG.APP_NAME, threshold_db=session_cfg.threshold_db)

    _ = MeterApp(overlay, session_cfg)
    app.exec()


if __name__ == "__main__":
    main()
