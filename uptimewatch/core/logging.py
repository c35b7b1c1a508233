import logging

_RESERVED = frozenset(logging.LogRecord('', 0, '', 0, '', None, None).__dict__) | {
    'message',
    'asctime',
}


class ContextSafeFormatter(logging.Formatter):
    """Formatter that tolerates records without request context fields.

    Any other ``extra`` fields on the record are appended as ``key=value``.
    """

    _defaults = {
        'request_id': '-',
        'method': '-',
        'path': '-',
        'status_code': '-',
        'duration_ms': '-',
    }

    def format(self, record: logging.LogRecord) -> str:
        for key, default in self._defaults.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        formatted = super().format(record)
        extras = [
            f'{key}={value}'
            for key, value in record.__dict__.items()
            if key not in _RESERVED and key not in self._defaults
        ]
        if extras:
            formatted = f"{formatted} {' '.join(extras)}"
        return formatted


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured logging only for uptimewatch loggers."""
    fmt = (
        '%(asctime)s %(levelname)s %(name)s '
        'request_id=%(request_id)s method=%(method)s path=%(path)s '
        'status_code=%(status_code)s duration_ms=%(duration_ms)s message=%(message)s'
    )
    formatter = ContextSafeFormatter(fmt)
    logger = logging.getLogger('uptimewatch')
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        for handler in logger.handlers:
            handler.setFormatter(formatter)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger.addHandler(handler)
