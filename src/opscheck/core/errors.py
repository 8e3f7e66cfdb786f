from __future__ import annotations


class OpscheckError(Exception):
    pass


class ConfigError(OpscheckError):
    """Invalid configuration; raised before any probe executes."""


class ProbeExecutionError(OpscheckError):
    """A probe could not obtain the state of its target."""


class ReportWriteError(OpscheckError):
    pass


class NotificationError(OpscheckError):
    pass
