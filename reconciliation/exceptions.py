"""Error taxonomy for the combined replenishment reconciliation."""

from typing import Dict


class ReconciliationError(Exception):
    """Base exception for reconciliation failures."""
    pass


class SourceFetchError(ReconciliationError):
    """One source adapter failed or timed out.

    The engine degrades to single-source mode when this is raised by only
    one of the two adapters.
    """

    def __init__(self, source: str, message: str, timed_out: bool = False):
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.message = message
        self.timed_out = timed_out


class BothSourcesFailedError(ReconciliationError):
    """Neither source returned data; the request cannot be answered."""

    def __init__(self, errors: Dict[str, str]):
        details = "; ".join(f"{name}: {msg}" for name, msg in errors.items())
        super().__init__(f"All inventory sources failed ({details})")
        self.errors = dict(errors)


class MappingGapWarning(UserWarning):
    """A Source-A location code has no Source-B mapping.

    Non-fatal: the rows are kept under a pseudo-location keyed by the
    Source-A code itself.
    """

    def __init__(self, location_code: str):
        super().__init__(
            f"Source-A location {location_code!r} has no Source-B mapping; "
            f"kept as its own location"
        )
        self.location_code = location_code
