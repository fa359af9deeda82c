"""
Tests for the workspace loader.
"""

import json

import pytest

from wsrun.errors import WorkspaceError
from wsrun.workspace import load_workspace, package_record, workspace_patterns


def write_manifest(directory, data):
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "package.json").write_text(json.dumps(data))


@pytest.fixture
def workspace(tmp_path):
    write_manifest(tmp_path, {"name": "root", "private": True, "workspaces": ["packages/*"]})
    write_manifest(tmp_path / "packages" / "app", {
        "name": "app",
        "dependencies": {"lib": "^1.0.0", "react": "^18.0.0"},
        "devDependencies": {"tools": "*"},
        "scripts": {"build": "echo build app", "changed": "exit 0"},
    })
    write_manifest(tmp_path / "packages" / "lib", {
        "name": "lib",
        "scripts": {"build": "echo build lib"},
    })
    write_manifest(tmp_path / "packages" / "tools", {
        "name": "tools",
        "scripts": {"lint": "echo lint"},
    })
    (tmp_path / "packages" / "not-a-package").mkdir()
    return tmp_path


def test_load_workspace_records(workspace):
    records = {r["name"]: r for r in load_workspace(workspace, "build")}

    assert sorted(records) == ["app", "lib", "tools"]
    assert records["app"]["dependencies"] == ["lib", "react", "tools"]
    assert records["app"]["command"] == "echo build app"
    assert records["app"]["path"] == str((workspace / "packages" / "app").resolve())
    assert records["tools"]["command"] is None


def test_condition_script_lookup(workspace):
    records = {r["name"]: r for r in load_workspace(workspace, "build", condition_script="changed")}

    assert records["app"]["condition"] == "exit 0"
    assert records["lib"]["condition"] is None


def test_exclude_missing(workspace):
    records = load_workspace(workspace, "build", exclude_missing=True)

    assert sorted(r["name"] for r in records) == ["app", "lib"]


def test_negated_pattern(workspace):
    write_manifest(workspace, {"name": "root", "workspaces": ["packages/*", "!packages/tools"]})

    records = load_workspace(workspace, "build")

    assert sorted(r["name"] for r in records) == ["app", "lib"]


def test_dict_workspaces_field():
    assert workspace_patterns({"workspaces": {"packages": ["a/*"]}}) == ["a/*"]
    assert workspace_patterns({}) == []

    with pytest.raises(WorkspaceError):
        workspace_patterns({"workspaces": "packages/*"})


def test_missing_root_manifest(tmp_path):
    with pytest.raises(WorkspaceError):
        load_workspace(tmp_path, "build")


def test_invalid_json(tmp_path):
    (tmp_path / "package.json").write_text("{not json")

    with pytest.raises(WorkspaceError):
        load_workspace(tmp_path, "build")


def test_package_without_name(tmp_path):
    with pytest.raises(WorkspaceError):
        package_record({"scripts": {}}, tmp_path, "build")
