"""Errors raised by the shared configuration and authentication layer."""


class MigrationError(Exception):
    """Base class for every error raised by the migration tooling."""


class ConfigError(MigrationError):
    """Configuration or credentials are missing or malformed."""


class AuthenticationFailure(MigrationError):
    """Credentials were rejected. Fatal: aborts the whole run."""


class SourceUnavailable(MigrationError):
    """The source or target API could not be reached during verification or discovery."""
