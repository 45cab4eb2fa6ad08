"""Domain types — NewType aliases for type-safe identifiers."""

from typing import NewType

RunId = NewType("RunId", str)
ArtifactName = NewType("ArtifactName", str)
CorrelationKey = NewType("CorrelationKey", str)
