"""Splits a completion into program source and dependency manifest."""
import logging

from models.artifacts import ArtifactPair

logger = logging.getLogger(__name__)

SENTINEL = "---REQUIREMENTS---"


class MissingSeparatorError(ValueError):
    """Raised when a completion does not contain the sentinel."""

    def __init__(self, text: str):
        self.text_length = len(text)
        super().__init__(f"Invalid response format: Missing {SENTINEL} separator")


def parse_artifacts(text: str) -> ArtifactPair:
    """
    Split raw completion text at the first sentinel.

    Both halves are stripped of surrounding whitespace. Anything after a
    second sentinel stays in the manifest half untouched. No check is made
    that the source is valid Python or that the manifest lists packages.

    Args:
        text: Raw completion text

    Returns:
        ArtifactPair(source, manifest)

    Raises:
        MissingSeparatorError: If the sentinel does not occur in `text`
    """
    if SENTINEL not in text:
        raise MissingSeparatorError(text)

    source, manifest = text.split(SENTINEL, 1)
    if SENTINEL in manifest:
        logger.warning("Completion contains more than one separator; splitting at the first")
    return ArtifactPair(source=source.strip(), manifest=manifest.strip())
