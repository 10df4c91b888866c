#########################################################################################
##
##                                 LOGGING MANAGER
##                                (utils/logger.py)
##
#########################################################################################

# IMPORTS ===============================================================================

import logging
import sys
from pathlib import Path


# CONSTANTS =============================================================================

ROOT_LOGGER_NAME = "pkest"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# CLASS =================================================================================

class LoggerManager:
    """Process-wide manager for the ``pkest`` logger hierarchy.

    Every module obtains its logger through :meth:`get_logger`, which returns a
    child of the ``pkest`` root logger. The library never prints on its own:
    a ``NullHandler`` is installed until the application opts in through
    :meth:`configure`.

    Example
    -------
    .. code-block:: python

        from pkest import LoggerManager

        LoggerManager().configure(level=logging.DEBUG)
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance


    def __init__(self):
        if self._initialized:
            return

        self._root = logging.getLogger(ROOT_LOGGER_NAME)
        self._root.addHandler(logging.NullHandler())
        self._handler: logging.Handler | None = None
        self._initialized = True


    @property
    def root(self) -> logging.Logger:
        """The ``pkest`` root logger."""
        return self._root


    def configure(
        self,
        enabled: bool = True,
        output: str | Path | None = None,
        level: int = logging.INFO,
        format: str | None = None,
    ) -> logging.Logger:
        """Attach (or detach) the library log handler.

        Parameters
        ----------
        enabled : bool
            When ``False`` the managed handler is removed and only the
            ``NullHandler`` remains.
        output : str or Path, optional
            Log file path. Logs go to stdout when omitted.
        level : int
            Level applied to the root logger and the handler.
        format : str, optional
            ``logging.Formatter`` format string.

        Returns
        -------
        logging.Logger
            The ``pkest`` root logger.
        """
        if self._handler is not None:
            self._root.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

        if not enabled:
            return self._root

        if output is not None:
            path = Path(output)
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(path)
        else:
            handler = logging.StreamHandler(sys.stdout)

        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(format or DEFAULT_FORMAT))

        self._root.addHandler(handler)
        self._root.setLevel(level)
        self._handler = handler
        return self._root


    def get_logger(self, name: str) -> logging.Logger:
        """Return the ``pkest.<name>`` child logger."""
        return self._root.getChild(name)


    def set_level(self, level: int, module: str | None = None) -> None:
        """Set the level of the root logger or of one child logger."""
        logger = self._root if module is None else self.get_logger(module)
        logger.setLevel(level)
