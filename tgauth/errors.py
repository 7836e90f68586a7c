class NotFoundError(Exception):
    pass


class UnauthorizedError(Exception):
    pass


class ConflictError(Exception):
    pass


class ConfigError(Exception):
    """Raised when a required setting is missing or malformed at point of use."""
