"""
Decibel Meter
Medidor em consola

Objetivo:
- Medir o nível do microfone sem HUD (terminal)
- Listar os microfones disponíveis
- Ajudar a afinar o limiar de alerta

Como usar:
  python -m decibel_meter.cli
  python -m decibel_meter.cli --threshold 70 --duration 10
  python -m decibel_meter.cli --list-devices

Notas:
- Não grava ficheiros
- Ctrl+C para sair
"""

import argparse
import logging
import sys
import time
from typing import List, Optional, TextIO

from .audio_source import AudioConfig, list_input_devices
from .config import CONFIG
from .errors import MeterError
from .logging_setup import setup_logging
from .session import DecibelReading, SamplingSession, SessionConfig, SessionState
from .sinks import AlertEvent, ErrorEvent, QueueReadingSink, ReadingEvent, StateEvent

log = logging.getLogger("DecibelMeter.CLI")

BAR_WIDTH = 40


def format_reading(reading: DecibelReading, width: int = BAR_WIDTH) -> str:
    filled = int(round(min(100.0, max(0.0, reading.value)) / 100.0 * width))
    bar = "#" * filled + "-" * (width - filled)
    flag = "  !! ALERTA" if reading.alert else ""
    return f"[{bar}] {reading.value:5.1f} dB{flag}"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Medidor de decibéis (consola)")
    parser.add_argument("--threshold", type=float, default=CONFIG.THRESHOLD_DB,
                        help="Limiar de alerta em dB (escala 0..100)")
    parser.add_argument("--cadence-ms", type=int, default=CONFIG.CADENCE_MS,
                        help="Intervalo entre leituras (ms)")
    parser.add_argument("--device", type=str, default=None,
                        help="Índice ou nome do microfone (por defeito: o do sistema)")
    parser.add_argument("--duration", type=float, default=None,
                        help="Parar ao fim de N segundos")
    parser.add_argument("--max-read-errors", type=int, default=CONFIG.MAX_CONSECUTIVE_READ_ERRORS,
                        help="Parar após N leituras falhadas seguidas")
    parser.add_argument("--list-devices", action="store_true", help="Lista os microfones e sai")
    parser.add_argument("--log-level", type=str, default="INFO", help="DEBUG, INFO, WARNING...")
    return parser


def _parse_device(value: Optional[str]):
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def session_config_from_args(args: argparse.Namespace) -> SessionConfig:
    return SessionConfig(
        audio=AudioConfig(device=_parse_device(args.device)),
        threshold_db=args.threshold,
        cadence_ms=args.cadence_ms,
        max_consecutive_read_errors=args.max_read_errors,
    )


def run_console(session: SamplingSession, sink: QueueReadingSink,
                duration: Optional[float] = None, out: TextIO = sys.stdout) -> int:
    """
    Consome eventos do sink até a sessão terminar (ou acabar o tempo).
    Devolve o código de saída: 0 = parou normalmente, 1 = erro.
    """
    try:
        session.start(CONFIG.MIC_PERMISSION_GRANTED)
    except MeterError as e:
        print(f"[ERRO] {e.message}", file=out)
        return 1

    deadline = time.monotonic() + duration if duration is not None else None
    failed = False

    try:
        while True:
            if deadline is not None and time.monotonic() >= deadline:
                session.stop()

            event = sink.get(timeout=0.25)
            if event is None:
                continue

            if isinstance(event, ReadingEvent):
                print(format_reading(event.reading), file=out)
            elif isinstance(event, AlertEvent):
                log.info("Alerta %s", "ATIVO" if event.active else "desligado")
            elif isinstance(event, ErrorEvent):
                failed = True
                print(f"[ERRO] {event.error.message}", file=out)
            elif isinstance(event, StateEvent) and event.state in (SessionState.IDLE, SessionState.FAILED):
                break
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()

    return 1 if failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    setup_logging(CONFIG.APP_NAME, level=args.log_level)

    if args.list_devices:
        for idx, name, rate in list_input_devices():
            print(f"{idx:3d}  {name}  ({rate:.0f} Hz)")
        return 0

    try:
        session_cfg = session_config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    sink = QueueReadingSink()
    session = SamplingSession(session_cfg, sink=sink)

    print("A ouvir microfone... (Ctrl+C para sair)")
    return run_console(session, sink, duration=args.duration)


if __name__ == "__main__":
    sys.exit(main())
