"""Error taxonomy for the upload, reader and purge paths.

Every error carries the HTTP status and the plain-text message shown to the
client; ``main.py`` registers a single handler that turns them into responses.
"""


class CDNError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StoreUnavailable(CDNError):
    """Metadata store could not be reached or answered with an error."""

    status_code = 500


class NotFound(CDNError):
    status_code = 404


class Gone(CDNError):
    """The record exists but its file is no longer on disk."""

    status_code = 410


class BlockedType(CDNError):
    status_code = 415


class PayloadTooLarge(CDNError):
    status_code = 413


class MissingField(CDNError):
    status_code = 400


class InvalidUrl(CDNError):
    status_code = 400


class AllocationFailure(CDNError):
    status_code = 500


class IoFailure(CDNError):
    status_code = 500


class SerializationFailure(CDNError):
    status_code = 500


class RenderFailure(CDNError):
    status_code = 500
