"""Artifact records, aggregation and manifest generation.

This module handles:
- The artifact record produced by a step's upload directive
- Grouping uploaded artifact paths by type across an ordered step list
- Computing checksums
- Generating artifact manifests

Artifacts are only located, never transmitted. A record says where the
file lives and what type it is.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from buildflow.types import StepStatus

if TYPE_CHECKING:
    from buildflow.steps.step import BuildStep

logger = logging.getLogger(__name__)

# Well-known artifact types; any other non-empty string is accepted
APPLICATION_ARCHIVE = "application-archive"
BUILD_ARTIFACT = "build-artifact"

DEFAULT_ARTIFACT_TYPE = APPLICATION_ARCHIVE

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


@dataclass(frozen=True)
class Artifact:
    """A file uploaded by a build step.

    Attributes:
        type: Artifact type tag.
        path: Absolute path of the file.
        step_id: Id of the step that uploaded it.
        upload_index: Position among the step's uploads.
    """

    type: str
    path: str
    step_id: str
    upload_index: int


def iter_artifacts(
    steps: Sequence[BuildStep],
    only_succeeded: bool = False,
) -> Iterator[tuple[int, Artifact]]:
    """Iterate artifacts in (step order, upload order).

    Args:
        steps: Ordered step list.
        only_succeeded: Skip steps that did not finish successfully.

    Yields:
        Tuples of (step index, artifact).
    """
    for index, step in enumerate(steps):
        if only_succeeded and step.status is not StepStatus.SUCCEEDED:
            continue
        for artifact in step.artifacts:
            yield index, artifact


def collect_artifacts(
    steps: Sequence[BuildStep],
    only_succeeded: bool = False,
) -> dict[str, list[str]]:
    """Group uploaded artifact paths by artifact type.

    Types with no uploads are absent from the result. Repeated uploads of
    the same path are kept, in order.

    Args:
        steps: Ordered step list.
        only_succeeded: Skip steps that did not finish successfully.

    Returns:
        Mapping of artifact type to ordered list of absolute paths.
    """
    grouped: dict[str, list[str]] = {}
    for _index, artifact in iter_artifacts(steps, only_succeeded=only_succeeded):
        grouped.setdefault(artifact.type, []).append(artifact.path)
    return grouped


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def _describe_file(path_str: str) -> dict[str, Any]:
    path = Path(path_str)
    entry: dict[str, Any] = {"path": path_str}
    if path.is_file():
        entry["size_bytes"] = path.stat().st_size
        entry["sha256"] = compute_file_hash(path)
    else:
        logger.warning("Artifact no longer exists: %s", path_str)
        entry["missing"] = True
    return entry


def generate_manifest(
    artifacts: Mapping[str, Sequence[str]],
    workflow_id: str | None = None,
    extra_metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Generate an artifact manifest.

    The manifest contains:
    - Artifacts grouped by type, with size and checksum when the file exists
    - Workflow identification
    - Timestamps
    - Optional extra metadata

    Args:
        artifacts: Mapping of artifact type to ordered paths.
        workflow_id: Optional workflow identifier.
        extra_metadata: Optional additional metadata.

    Returns:
        Manifest dictionary suitable for JSON serialization.
    """
    now = datetime.now(timezone.utc)

    entries = {
        artifact_type: [_describe_file(p) for p in paths]
        for artifact_type, paths in artifacts.items()
    }

    manifest: dict[str, Any] = {
        "version": "1.0",
        "generated_at": now.isoformat(),
        "artifacts": entries,
    }

    if workflow_id:
        manifest["workflow_id"] = workflow_id
    if extra_metadata:
        manifest["metadata"] = extra_metadata

    all_entries = [e for group in entries.values() for e in group]
    manifest["summary"] = {
        "total_artifacts": len(all_entries),
        "total_size_bytes": sum(e.get("size_bytes", 0) for e in all_entries),
        "types": sorted(entries),
    }

    return manifest


def write_manifest(
    manifest: dict[str, Any],
    output_path: Path,
) -> Path:
    """Write manifest to a JSON file.

    Args:
        manifest: Manifest dictionary.
        output_path: Output file path.

    Returns:
        Path to written manifest file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)

    logger.info("Wrote manifest to %s", output_path)
    return output_path


__all__ = [
    "APPLICATION_ARCHIVE",
    "BUILD_ARTIFACT",
    "DEFAULT_ARTIFACT_TYPE",
    "HASH_CHUNK_SIZE",
    "Artifact",
    "collect_artifacts",
    "compute_file_hash",
    "generate_manifest",
    "iter_artifacts",
    "write_manifest",
]
