import logging, sys, os
from typing import Optional

# Third-party loggers that are chatty at INFO and add nothing over our own lines.
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def setup_logging(env: Optional[str] = None) -> logging.Logger:
    """Installs the stdout handler on the `cryptotracker` logger once. DEBUG in dev, INFO elsewhere."""
    logger = logging.getLogger("cryptotracker")
    if logger.handlers:
        return logger
    env = env or os.getenv("ENV", "dev")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if env == "dev" else logging.INFO)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger
