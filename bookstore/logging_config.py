import logging

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def configure_logging(level: str = 'INFO') -> None:
    root = logging.getLogger()
    if not any(getattr(handler, '_bookstore', False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._bookstore = True
        root.addHandler(handler)
    root.setLevel(level.upper())
