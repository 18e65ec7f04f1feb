"""Page version control: snapshots, diffs, restores and retention.

Exports
-------
VersionSnapshotManager
    Snapshot-then-commit updates with compare-and-set versioning.
RestoreCoordinator
    Reinstate a snapshot as a new version.
RetentionPruner
    Trim history to the newest N snapshots.
diff_versions
    Positional line diff between two versions.
"""

from .diff import diff_lines, diff_versions
from .restore import RestoreCoordinator
from .retention import RetentionPruner
from .snapshot import VersionSnapshotManager, validate_title

__all__ = [
    "RestoreCoordinator",
    "RetentionPruner",
    "VersionSnapshotManager",
    "diff_lines",
    "diff_versions",
    "validate_title",
]
