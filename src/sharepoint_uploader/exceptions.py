"""Typed failures surfaced by the uploader."""


class UploaderError(Exception):
    """Base class for every failure the uploader reports to its caller."""


class ConfigurationError(UploaderError):
    """Required settings or inputs are missing or invalid. Fix and rerun."""


class AuthFailure(UploaderError):
    """No configured credential strategy produced a token."""


class CertificateError(AuthFailure):
    """The configured certificate is missing, unreadable or has no private key."""


class ResolutionFailure(UploaderError):
    """A site, library or folder could not be looked up or created."""


class UploadFailure(UploaderError):
    """The file transfer failed or the response lacked an expected field."""
