"""Internal error type."""


class CatchpointError(Exception):
    """Raised for failures inside the capture pipeline itself.

    Events whose first exception value carries this type name are dropped by
    the inbound filter unless `ignore_internal` is disabled.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


INTERNAL_ERROR_TYPE = CatchpointError.__name__
