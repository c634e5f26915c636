"""Error taxonomy for the Pixel Pal engine.

None of these are fatal to the process: every caller keeps a last-known-good
in-memory state to render when one of them is raised.
"""


class PixelPalError(Exception):
    """Base class for all engine errors."""


class ProviderUnavailable(PixelPalError):
    """The step provider has no read authorization."""


class FetchFailed(PixelPalError):
    """A transient failure while querying the step provider."""


class RegressiveUpdate(PixelPalError):
    """A cumulative total lower than the stored one was offered."""

    def __init__(self, new_total: int, stored_total: int):
        super().__init__(
            f"Rejected regressive step total {new_total} (stored {stored_total})"
        )
        self.new_total = new_total
        self.stored_total = stored_total


class PersistenceFailure(PixelPalError):
    """Saving a record failed; the in-memory state is still current."""

    # Set when the failed save followed a step update, so its events are not lost
    result = None


class ProfileMissing(PixelPalError):
    """An operation needs a user profile but onboarding has not happened."""


class ProfileExists(PixelPalError):
    """A profile was already created; its baseline cannot be reset."""
