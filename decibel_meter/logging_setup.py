"""
Decibel Meter
Logging Setup

Objetivo:
- Criar logs consistentes (ficheiro + consola)
- Evitar prints espalhados pelo projeto
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union


def setup_logging(
    app_name: str = "DecibelMeter",
    level: Union[int, str] = logging.INFO,
    logs_dir: Union[str, Path] = "logs",
) -> None:
    """
    Configura logging global:
    - consola (nível pedido)
    - ficheiro rotativo em <logs_dir>/decibel_meter.log
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    log_file = logs_dir / "decibel_meter.log"

    logger = logging.getLogger()
    logger.setLevel(level)

    # Fechar e limpar handlers para evitar duplicação quando se reinicia em dev
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(fmt)

    # Ficheiro rotativo (mantém 3 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=2_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(fmt)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    logging.getLogger(app_name).info("Logging iniciado.")
