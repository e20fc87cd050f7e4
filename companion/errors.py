"""
Error taxonomy for the correction session flow.

ValidationError, UpstreamError and PersistenceError share a common base so
routes can translate them into error payloads in one place.
CancellationSignal is deliberately not a CompanionError: a superseded
detection request is discarded, never reported.
"""


class CompanionError(Exception):
    """Base class for errors the companion surfaces to callers."""


class ValidationError(CompanionError):
    """Input was empty or insufficient; no network call was issued."""


class UpstreamError(CompanionError):
    """An AI service call failed, timed out or returned nothing usable."""


class PersistenceError(CompanionError):
    """A storage adapter operation failed."""


class CancellationSignal(Exception):
    """A detection response belongs to a superseded generation."""

    def __init__(self, generation: int):
        super().__init__(f"detection generation {generation} was superseded")
        self.generation = generation
