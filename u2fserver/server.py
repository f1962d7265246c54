"""Process-wide setup and the entry point for opening contexts."""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Optional

from .config import ServerSettings
from .context import Context
from .crypto import AttestationPolicy

PACKAGE_LOGGER = logging.getLogger("u2fserver")


class Mode(IntEnum):
    """Initialisation mode. Only affects diagnostics, never verification."""

    PRODUCTION = 0
    DEBUG = 1


class Server:
    """Handle returned by :func:`start`.

    ``start`` must be called once before any context is opened and ``stop``
    only after every context has been closed. The order is not checked.
    """

    def __init__(self, mode: Mode = Mode.PRODUCTION, settings: Optional[ServerSettings] = None) -> None:
        self.mode = Mode(mode)
        self.settings = settings or ServerSettings()
        self.policy = AttestationPolicy.from_files(
            self.settings.attestation_policy, self.settings.attestation_roots
        )
        self._handler: Optional[logging.Handler] = None
        self._previous_level = PACKAGE_LOGGER.level

    def _configure_logging(self) -> None:
        if self.mode is Mode.DEBUG:
            PACKAGE_LOGGER.setLevel(logging.DEBUG)
            if not PACKAGE_LOGGER.handlers and not logging.getLogger().handlers:
                self._handler = logging.StreamHandler()
                self._handler.setFormatter(logging.Formatter(self.settings.log_format))
                PACKAGE_LOGGER.addHandler(self._handler)
        else:
            PACKAGE_LOGGER.setLevel(logging.WARNING)

    def open(self) -> Context:
        return Context(self.settings, self.policy)

    def close(self, ctx: Context) -> None:
        ctx.close()

    def stop(self) -> None:
        if self._handler is not None:
            PACKAGE_LOGGER.removeHandler(self._handler)
            self._handler = None
        PACKAGE_LOGGER.setLevel(self._previous_level)


def start(mode: Mode = Mode.PRODUCTION, settings: Optional[ServerSettings] = None) -> Server:
    server = Server(mode, settings)
    server._configure_logging()
    PACKAGE_LOGGER.debug("U2F server started in %s mode", server.mode.name.lower())
    return server
