"""Generated artifact models."""
from dataclasses import dataclass


@dataclass(frozen=True)
class ArtifactPair:
    """The generated bot: program source and its dependency manifest."""
    source: str
    manifest: str

    @property
    def is_complete(self) -> bool:
        """True when neither half is blank."""
        return bool(self.source.strip()) and bool(self.manifest.strip())
