# medsales/core/logconfig.py
import logging
from logging.config import dictConfig

from .config import settings

_CONFIGURED = False


def configure_logging(level: str = None) -> None:
    """Uygulama açılışında bir kez çağrılır; modüller getLogger(__name__) kullanır."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "medsales": {
                    "handlers": ["console"],
                    "level": (level or settings.LOG_LEVEL).upper(),
                    "propagate": False,
                },
            },
        }
    )
    _CONFIGURED = True
    logging.getLogger("medsales").debug("logging configured")
