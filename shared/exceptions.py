"""Exceptions shared by the scheduling core."""


class ConfigurationError(Exception):
    """Raised at startup when handlers, listeners or triggers are wired wrongly."""


class DuplicateBindingError(ConfigurationError):
    """A second handler was bound to a slot that accepts exactly one."""


class MissingBindingError(ConfigurationError):
    """A required handler, listener or trigger has nothing bound to it."""
