"""Domain errors. Routers translate these into HTTP responses."""


class QuickValError(Exception):
    """Base class for errors raised by the valuation services."""


class InvalidPropertyInput(QuickValError):
    """Submitted property payload fails minimal validation."""


class JobNotFound(QuickValError):
    """Job id is unknown, already delivered, or reaped."""


class JobQueueFull(QuickValError):
    """The background queue is at capacity; nothing was created."""


class WeightsNotFound(QuickValError):
    pass


class ActiveWeightsDeletion(QuickValError):
    """The active weight configuration cannot be deleted."""


class StoreError(QuickValError):
    """A read or write against the key-value store failed."""
