from __future__ import annotations

import logging

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s - %(message)s'
_HANDLER_NAME = 'trade_admin'


def setup_logging(level: str = 'INFO') -> logging.Logger:
    """Configure a single stream handler on the root logger and wire uvicorn into it."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(numeric_level)

    # avoid duplicate handlers on reload
    handler = next((h for h in root.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    handler.setLevel(numeric_level)

    for name in ('uvicorn', 'uvicorn.error', 'uvicorn.access'):
        lg = logging.getLogger(name)
        lg.setLevel(numeric_level)
        lg.handlers = []
        lg.propagate = True

    return logging.getLogger('trade_admin')
