"""reqtest logging - verbose/diagnostic output routed through click."""

import logging

import click

logger = logging.getLogger("reqtest")

_STYLES = {
    logging.DEBUG: {"fg": "bright_black"},
    logging.INFO: {"fg": "blue"},
    logging.WARNING: {"fg": "yellow"},
    logging.ERROR: {"fg": "red"},
}


class ClickHandler(logging.Handler):
    """Echo records with click so CliRunner captures them like regular output."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            style = _STYLES.get(record.levelno, {})
            click.echo(click.style(msg, **style), err=record.levelno >= logging.WARNING)
        except Exception:
            self.handleError(record)


def setup_logging(verbose: bool = False) -> None:
    """Attach the click handler once; DEBUG when verbose, INFO otherwise."""
    if not any(isinstance(h, ClickHandler) for h in logger.handlers):
        handler = ClickHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
