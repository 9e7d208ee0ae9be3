"""Error taxonomy for the authoring engine.

Only :class:`LoadError` is fatal for an editing session. Everything else is
reported to the author and leaves the in-memory document untouched.
"""


class ConvoformError(Exception):
    """Base class for all convoform errors."""


class PersistenceError(ConvoformError):
    """The forms API could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LoadError(ConvoformError):
    """The conversation could not be fetched; the session cannot continue."""


class SaveError(ConvoformError):
    """An autosave or forced save failed. Local edits are kept."""


class PublishError(ConvoformError):
    """Publishing failed; draft/live state is unchanged."""


class AIGenerationError(ConvoformError):
    """An AI wording or conversation generation call failed."""


class AssetUploadError(ConvoformError):
    """A visual upload failed; the previous visual stays in place."""


class FormNotFoundError(ConvoformError):
    """The reference forms store has no form with the requested id."""
