"""
Decibel Meter
HUD do medidor (valor + barra + alerta + botão)

- Valor atual em dB e estado ("Nível atual" / "Sem gravação")
- Barra 0..100 com faixa de cor (verde / amarelo / laranja / vermelho)
- Banner de aviso enquanto grava e o valor está acima do limiar
- Emite toggle_requested() quando carregas no botão Iniciar/Parar
"""

from PySide6 import QtCore, QtWidgets

from .bands import RED, level_band, meter_fraction


class MeterOverlay(QtWidgets.QWidget):
    toggle_requested = QtCore.Signal()

    def __init__(self, app_name: str = "DecibelMeter", threshold_db: float = 75.0):
        super().__init__()
        self.app_name = app_name
        self.threshold_db = threshold_db

        self._db = 0.0
        self._recording = False
        self._alert = False

        self.setWindowTitle("Medidor de Decibéis")
        self.resize(420, 360)

        self._build_ui()
        self._refresh()

        self.show()

    # ---------------- UI ----------------

    def _build_ui(self) -> None:
        self._root = QtWidgets.QFrame(self)
        self._root.setObjectName("root")

        self._title = QtWidgets.QLabel("Medidor de Decibéis", self._root)
        self._title.setObjectName("title")
        self._title.setAlignment(QtCore.Qt.AlignCenter)

        self._value = QtWidgets.QLabel("0 dB", self._root)
        self._value.setObjectName("value")
        self._value.setAlignment(QtCore.Qt.AlignCenter)

        self._status = QtWidgets.QLabel("Sem gravação", self._root)
        self._status.setObjectName("status")
        self._status.setAlignment(QtCore.Qt.AlignCenter)

        self._bar = QtWidgets.QProgressBar(self._root)
        self._bar.setRange(0, 1000)
        self._bar.setTextVisible(False)

        scale = QtWidgets.QHBoxLayout()
        scale.addWidget(QtWidgets.QLabel("0 dB", self._root))
        scale.addStretch(1)
        scale.addWidget(QtWidgets.QLabel("100 dB", self._root))

        self._banner = QtWidgets.QLabel(
            f"AVISO: ruído acima de {int(self.threshold_db)} dB!", self._root
        )
        self._banner.setObjectName("banner")
        self._banner.setAlignment(QtCore.Qt.AlignCenter)

        self._error = QtWidgets.QLabel("", self._root)
        self._error.setObjectName("error")
        self._error.setWordWrap(True)

        self._button = QtWidgets.QPushButton("Iniciar gravação", self._root)
        self._button.setObjectName("toggle")
        self._button.clicked.connect(self.toggle_requested.emit)

        layout = QtWidgets.QVBoxLayout(self._root)
        layout.setContentsMargins(24, 20, 24, 20)
        layout.setSpacing(12)
        layout.addWidget(self._title)
        layout.addWidget(self._value)
        layout.addWidget(self._status)
        layout.addWidget(self._bar)
        layout.addLayout(scale)
        layout.addWidget(self._banner)
        layout.addWidget(self._error)
        layout.addWidget(self._button)

        outer = QtWidgets.QVBoxLayout(self)
        outer.setContentsMargins(0, 0, 0, 0)
        outer.addWidget(self._root)

        self.setStyleSheet("""
        #title { font-size: 22px; font-weight: 700; color: #7155EC; }
        #value { font-size: 44px; font-weight: 700; }
        #status { font-size: 14px; color: gray; }
        #banner {
            background-color: #FF5252;
            color: white;
            font-weight: 700;
            border-radius: 8px;
            padding: 12px;
        }
        #error { color: #D32F2F; font-size: 12px; }
        #toggle { font-size: 16px; font-weight: 700; padding: 12px; }
        """)

    def _refresh(self) -> None:
        band = level_band(self._db, self.threshold_db)
        value_color = RED.color if self._alert else "#725BF8"

        self._value.setText(f"{int(self._db)} dB")
        self._value.setStyleSheet(f"color: {value_color};")
        self._status.setText("Nível atual" if self._recording else "Sem gravação")

        self._bar.setValue(int(meter_fraction(self._db) * 1000))
        self._bar.setStyleSheet(f"QProgressBar::chunk {{ background-color: {band.color}; }}")

        self._banner.setVisible(self._alert and self._recording)
        self._button.setText("Parar gravação" if self._recording else "Iniciar gravação")

    # ---------------- Public API ----------------

    def is_recording(self) -> bool:
        return self._recording

    def is_alert_visible(self) -> bool:
        return self._alert and self._recording

    def button_text(self) -> str:
        return self._button.text()

    def set_level(self, db: float, alert: bool) -> None:
        self._db = float(db)
        self._alert = bool(alert)
        self._refresh()

    def set_alert(self, active: bool) -> None:
        self._alert = bool(active)
        self._refresh()

    def set_recording(self, recording: bool) -> None:
        self._recording = bool(recording)
        if recording:
            self._db = 0.0
            self._alert = False
        self._refresh()

    def set_error(self, text: str) -> None:
        self._error.setText((text or "").strip())
