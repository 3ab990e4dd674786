import logging
import sys

from pythonjsonlogger import jsonlogger

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiokafka", "httpx")


def setup_logging(service_name: str, log_level: str = "INFO") -> None:
    """JSON logs on stdout, one object per record, tagged with the service name."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if root_logger.handlers:
        root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
            rename_fields={"levelname": "level"},
            static_fields={"service": service_name},
        )
    )
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
