# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Source classifier assigning an authoritative kind to each artifact."""

import logging
from pathlib import PurePosixPath

from ngsmells.model import ClassifiedArtifact, Kind, SourceArtifact

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = frozenset({"angular.json"})
TEST_SUFFIXES = (".spec.ts", ".test.ts")
ROUTING_NAME_MARKERS = ("routing", ".routes.", ".guard.")
ROUTING_CONTENT_MARKERS = ("RouterModule", "Routes =", ": Routes")
STORE_CONTENT_MARKERS = (
    "createReducer",
    "createSelector",
    "createFeatureSelector",
    "createEffect",
    "StoreModule",
)
STORE_NAME_MARKERS = (
    ".reducer.",
    ".selector.",
    ".selectors.",
    ".state.",
    ".effects.",
    ".actions.",
)


def classify(path: str, content: str, hint: Kind | None = None) -> Kind:
    """Assign a kind from path and content signatures.

    Rules are evaluated in precedence order and the first match wins:
    extension, file naming, decorators, store signatures, then the hint.

    Args:
        path: Artifact path.
        content: Artifact text.
        hint: Optional coarse kind from the producer.

    Returns:
        Classified kind; ``Kind.OTHER`` when nothing matches.
    """
    name = PurePosixPath(path.replace("\\", "/")).name.lower()

    if name.endswith(".html"):
        return Kind.TEMPLATE
    if name.endswith(".json"):
        return Kind.CONFIG if name in CONFIG_FILE_NAMES else Kind.OTHER
    if not name.endswith(".ts"):
        return _fallback(hint)

    if name.endswith(TEST_SUFFIXES):
        return Kind.TEST
    if any(marker in name for marker in ROUTING_NAME_MARKERS) or any(
        marker in content for marker in ROUTING_CONTENT_MARKERS
    ):
        return Kind.ROUTING

    if "@Component(" in content:
        return Kind.COMPONENT
    if "@Injectable(" in content:
        return Kind.SERVICE
    if "@Directive(" in content:
        return Kind.DIRECTIVE

    if any(marker in content for marker in STORE_CONTENT_MARKERS) or any(
        marker in name for marker in STORE_NAME_MARKERS
    ):
        return Kind.STORE

    return _fallback(hint)


def classify_artifact(artifact: SourceArtifact) -> ClassifiedArtifact:
    """Classify one artifact, degrading to ``Kind.OTHER`` on unexpected input.

    Args:
        artifact: Artifact to classify.

    Returns:
        Artifact paired with its kind.
    """
    try:
        kind = classify(artifact.path, artifact.content, artifact.kind_hint)
    except (AttributeError, TypeError, ValueError) as exc:
        logger.warning(
            f"Classification failed, treating artifact as other (file_path={artifact.path} error={exc})"
        )
        kind = Kind.OTHER
    return ClassifiedArtifact(artifact=artifact, kind=kind)


def _fallback(hint: Kind | None) -> Kind:
    if hint is not None and hint is not Kind.OTHER:
        return hint
    return Kind.OTHER
