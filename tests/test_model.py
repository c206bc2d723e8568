"""Tests for the resource entity model."""

import pydantic
import pytest

from savesync.dashboard import model


def test_target_config_resolved_from_type():
    """Test that a target's config takes the shape named by its type."""
    target = model.Target.model_validate({
        "id": 1, "name": "garage", "type": "s3_generic",
        "config": {"endpoint": "http://garage:3900", "bucket": "backups",
                   "access_key": "ak", "secret_key": "sk", "path_style": "false"},
    })

    assert isinstance(target.config, model.S3GenericConfig)
    assert target.config.path_style is False
    assert target.config.use_tls is True
    assert target.config.region is None


def test_target_config_drops_foreign_fields():
    """Test that wire keys from another variant are not kept."""
    target = model.Target.model_validate({
        "id": 2, "name": "disk", "type": "local",
        "config": {"path": "/mnt/backups", "host": "leftover.example.com"},
    })

    assert isinstance(target.config, model.LocalConfig)
    assert target.config.model_dump() == {"path": "/mnt/backups"}


def test_sftp_port_coerced_from_string():
    """Test that the string-only config map of the backend still parses."""
    target = model.Target.model_validate({
        "id": 3, "name": "nas", "type": "sftp",
        "config": {"host": "nas.local", "user": "backup", "path": "/srv", "port": "2222"},
    })

    assert target.config.port == 2222
    assert target.config.password is None


def test_unknown_target_type_rejected():
    """Test that types outside the closed set fail validation."""
    with pytest.raises(pydantic.ValidationError):
        model.Target.model_validate(
            {"id": 4, "name": "old", "type": "s3", "config": {"bucket": "b"}}
        )


def test_source_null_exclusions():
    """Test that a null exclusion list from the backend becomes empty."""
    source = model.Source.model_validate(
        {"id": 1, "name": "docs", "path": "/docs", "exclusions": None, "target_id": None}
    )

    assert source.exclusions == []
    assert source.target_id is None


def test_find_target_dangling_reference():
    """Test that a reference to a deleted target resolves to no target."""
    targets = [
        model.Target.model_validate({"id": 1, "name": "disk", "type": "local", "config": {"path": "/b"}})
    ]

    assert model.find_target(targets, 1).name == "disk"
    assert model.find_target(targets, 99) is None
    assert model.find_target(targets, None) is None


def test_status_terminal():
    """Test the terminal/non-terminal split of job and snapshot statuses."""
    assert model.Status.SUCCESS.is_terminal
    assert model.Status.FAILED.is_terminal
    assert not model.Status.PENDING.is_terminal
    assert not model.Status.RUNNING.is_terminal


def test_manifest_available_once_not_pending():
    """Test that a manifest is only offered for snapshots past pending."""
    snapshot = model.Snapshot(id=1, source_id=1, target_id=1, status="pending")
    assert not snapshot.manifest_available

    snapshot = model.Snapshot(id=1, source_id=1, target_id=1, status="running")
    assert snapshot.manifest_available


def test_file_node_tree():
    """Test parsing a recursive snapshot file tree."""
    root = model.FileNode.model_validate({
        "name": "documents", "path": "/documents", "is_dir": True,
        "children": [
            {"name": "a.txt", "path": "/documents/a.txt", "is_dir": False, "size": 10,
             "mod_time": "2025-01-21T10:00:00Z"},
            {"name": "empty", "path": "/documents/empty", "is_dir": True, "children": []},
        ],
    })

    assert root.has_children
    assert root.children[0].size == 10
    assert root.children[0].children is None
    assert not root.children[1].has_children


def test_file_node_leaf_cannot_have_children():
    """Test the leaf invariant of file nodes."""
    with pytest.raises(pydantic.ValidationError):
        model.FileNode.model_validate({
            "name": "a.txt", "path": "/a.txt", "is_dir": False, "size": 1,
            "children": [{"name": "b", "path": "/a.txt/b", "is_dir": False, "size": 1}],
        })


def test_file_node_file_needs_size():
    """Test that a file without a size is rejected while a directory may omit it."""
    with pytest.raises(pydantic.ValidationError, match="has no size"):
        model.FileNode.model_validate({"name": "a.txt", "path": "/a.txt", "is_dir": False})

    assert model.FileNode.model_validate({"name": "d", "path": "/d", "is_dir": True}).size is None
