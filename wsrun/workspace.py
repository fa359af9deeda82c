"""
Workspace Loader
================

Reads package manifests (package.json) of a multi-package workspace and
turns them into package records for the dependency resolver.

The root manifest lists member directories in its "workspaces" field,
either as a list of glob patterns or as {"packages": [...]}.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging

from wsrun.errors import WorkspaceError

logger = logging.getLogger(__name__)

MANIFEST = "package.json"

DEPENDENCY_FIELDS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)


def read_manifest(path: Path) -> Dict[str, Any]:
    """
    Load one package.json file.

    Raises:
        WorkspaceError: If the file is missing or not a JSON object
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise WorkspaceError(f"Manifest not found: {path}")
    except (OSError, json.JSONDecodeError) as e:
        raise WorkspaceError(f"Cannot read manifest {path}: {e}")

    if not isinstance(data, dict):
        raise WorkspaceError(f"Manifest {path} is not a JSON object")
    return data


def workspace_patterns(manifest: Dict[str, Any]) -> List[str]:
    workspaces = manifest.get("workspaces") or []
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages") or []
    if not isinstance(workspaces, list):
        raise WorkspaceError(f"Invalid 'workspaces' field: {workspaces!r}")
    return [str(p) for p in workspaces]


def find_package_dirs(root: Path, patterns: List[str]) -> List[Path]:
    """Expand workspace glob patterns into member directories that hold a manifest."""
    included: Dict[Path, None] = {}
    excluded = set()

    for pattern in patterns:
        if pattern.startswith("!"):
            excluded.update(p.resolve() for p in root.glob(pattern[1:]))
            continue
        for candidate in sorted(root.glob(pattern)):
            if candidate.is_dir() and (candidate / MANIFEST).is_file():
                included[candidate.resolve()] = None

    return [p for p in included if p not in excluded]


def package_record(
    manifest: Dict[str, Any],
    directory: Path,
    script: str,
    condition_script: Optional[str] = None
) -> Dict[str, Any]:
    """
    Convert a member manifest into a package record.

    Args:
        manifest: Parsed package.json
        directory: Package directory
        script: Name of the script to run
        condition_script: Name of the script used as the condition, if any

    Returns:
        Record with name, dependencies, command, condition and path
    """
    name = manifest.get("name")
    if not name:
        raise WorkspaceError(f"Package in {directory} has no name")

    dependencies: List[str] = []
    for field_name in DEPENDENCY_FIELDS:
        for dep in (manifest.get(field_name) or {}):
            if dep not in dependencies:
                dependencies.append(dep)

    scripts = manifest.get("scripts") or {}
    condition = scripts.get(condition_script) if condition_script else None
    if condition_script and condition is None:
        logger.debug(f"Package {name} has no '{condition_script}' script, treating as always eligible")

    return {
        "name": name,
        "dependencies": dependencies,
        "command": scripts.get(script),
        "condition": condition,
        "path": str(directory),
    }


def load_workspace(
    root: Union[str, Path],
    script: str,
    condition_script: Optional[str] = None,
    exclude_missing: bool = False
) -> List[Dict[str, Any]]:
    """
    Load package records for every member of a workspace.

    Args:
        root: Workspace root holding the root package.json
        script: Script to run in each package
        condition_script: Script evaluated as the per-package condition
        exclude_missing: Leave out packages that do not define the script

    Returns:
        List of package records in directory order

    Raises:
        WorkspaceError: If a manifest cannot be read
    """
    root = Path(root)
    root_manifest = read_manifest(root / MANIFEST)
    directories = find_package_dirs(root, workspace_patterns(root_manifest))

    records = []
    for directory in directories:
        record = package_record(read_manifest(directory / MANIFEST), directory, script, condition_script)
        if record["command"] is None and exclude_missing:
            logger.info(f"Excluding {record['name']}: no '{script}' script")
            continue
        records.append(record)

    logger.info(f"Loaded {len(records)} packages from workspace {root}")
    return records
