from __future__ import annotations


class BDynError(Exception):
    """Base class for telemetry errors."""


class MissingSession(BDynError):
    """Raised when capture or aggregation is requested without a session id."""


class WriteFailure(BDynError):
    """The sink rejected an append (storage or network error)."""


class FetchFailure(BDynError):
    """A read from the sink failed; aggregation cannot proceed."""


class CaptureError(BDynError):
    pass
