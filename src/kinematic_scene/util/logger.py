"""
Logging API for the kinematic scene editor, wrapping :py:class:`logging.Logger`.

Every module logs through these helpers under the ``"kinematic_scene"``
logger; embedding applications configure verbosity with
:py:meth:`setup_logger`.
"""

import logging

LOGGER_NAME = "kinematic_scene"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def setup_logger(level="info", logger_name: str = LOGGER_NAME):
    """Set up logger level.

    Args:
        level: Log level. Default is "info". Other options are "debug", "warning", "error".
        logger_name: Name of the logger. Default is "kinematic_scene".

    Raises:
        ValueError: If log level is not one of [info, debug, warning, error].
    """
    FORMAT = "[%(levelname)s] [%(name)s] %(message)s"
    if level not in _LEVELS:
        raise ValueError("Log level should be one of [info, debug, warn, error]")
    logging.basicConfig(format=FORMAT, level=_LEVELS[level])
    logger = logging.getLogger(logger_name)
    logger.setLevel(level=_LEVELS[level])
    return logger


def log_debug(txt: str, logger_name: str = LOGGER_NAME, *args, **kwargs):
    logger = logging.getLogger(logger_name)
    logger.debug(txt, *args, **kwargs)


def log_warn(txt: str, logger_name: str = LOGGER_NAME, *args, **kwargs):
    """Log warning message. Also see :py:meth:`logging.Logger.warning`.

    Args:
        txt: Warning message.
        logger_name: Name of the logger. Default is "kinematic_scene".
    """
    logger = logging.getLogger(logger_name)
    logger.warning(txt, *args, **kwargs)


def log_info(txt: str, logger_name: str = LOGGER_NAME, *args, **kwargs):
    """Log info message. Also see :py:meth:`logging.Logger.info`."""
    logger = logging.getLogger(logger_name)
    logger.info(txt, *args, **kwargs)


def log_error(
    txt: str,
    logger_name: str = LOGGER_NAME,
    exc_info=False,
    stack_info=False,
    stacklevel: int = 2,
    *args,
    **kwargs
):
    """Log error and raise ValueError.

    Args:
        txt: Helpful message that conveys the error.
        logger_name: Name of the logger. Default is "kinematic_scene".
        exc_info: Add exception info to message. See :py:meth:`logging.Logger.error`.
        stack_info: Add stacktrace to message. See :py:meth:`logging.Logger.error`.
        stacklevel: See :py:meth:`logging.Logger.error`. Default value of 2 removes this function
            from the stack trace.

    Raises:
        ValueError: Error message.
    """
    logger = logging.getLogger(logger_name)
    logger.error(
        txt, exc_info=exc_info, stack_info=stack_info, stacklevel=stacklevel, *args, **kwargs
    )
    raise ValueError(txt)
