"""
Configuration du logging de l'application.
"""
import logging
from typing import Iterable, Optional

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

# Bibliothèques trop bavardes en DEBUG
NOISY_LOGGERS = ("PyQt6",)


def configure_logging(
    log_level: str = 'INFO',
    log_file: Optional[str] = None,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure le logger racine.

    Args:
        log_level: Niveau de log (DEBUG, INFO, WARNING, ERROR)
        log_file: Chemin vers le fichier de log (optionnel)
        quiet_loggers: Loggers tiers limités à WARNING
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
