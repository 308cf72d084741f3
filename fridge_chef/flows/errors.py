"""Exception hierarchy for the Fridge Chef pipeline.

Every stage failure derives from PersonalChefError so callers can catch the
whole pipeline or a single stage.
"""

from typing import Optional


class PersonalChefError(Exception):
    """Base exception for all pipeline errors."""

    stage = "pipeline"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        message = super().__str__()
        if self.cause is not None and str(self.cause) not in message:
            return f"{self.stage}: {message} ({type(self.cause).__name__}: {self.cause})"
        return f"{self.stage}: {message}"


class FetchError(PersonalChefError):
    """Raised when the image reference cannot be resolved into usable image bytes."""

    stage = "fetch"


class ExtractionError(PersonalChefError):
    """Raised when the vision model fails or its output does not match the fridge contents schema."""

    stage = "extraction"


class GenerationError(PersonalChefError):
    """Raised when the recipe model fails or returns no text."""

    stage = "recipe"


class IllustrationError(PersonalChefError):
    """Raised inside the illustration stage. Never escapes Illustrator.illustrate()."""

    stage = "illustration"

