"""Exception types shared by the extractor, normalizer, and delivery client."""


class ForwarderError(Exception):
    """Base class for all forwarder errors."""


class ConfigError(ForwarderError):
    """Invalid or incomplete configuration."""


class ExtractionError(ForwarderError):
    """Fatal source-side failure. Aborts the run."""


class CursorProtocolError(ExtractionError):
    """Source returned hits without a scroll id to continue from."""


class NormalizationError(ForwarderError):
    """A document could not be turned into a push record and is dropped."""


class DeliveryError(ForwarderError):
    """A single record was not accepted by the push endpoint.

    ``network`` is True when the request never got an HTTP response
    (refused, timed out, reset); ``status_code`` and ``body`` are set
    when the endpoint answered with a non-success status.
    """

    def __init__(self, message: str, status_code: int | None = None,
                 body: str = "", network: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.network = network
