import pytest

from gurulo.memory import MemorySyncQueue, MirroredWriter, SnapshotLocation


@pytest.fixture
def primary(tmp_path):
    return SnapshotLocation(tmp_path / "memory", "primary")


@pytest.fixture
def mirror(tmp_path):
    return SnapshotLocation(tmp_path / "memory_mirror", "mirror")


@pytest.fixture
def blocked_mirror(tmp_path):
    """Mirror whose root is a regular file, so every write fails."""

    root = tmp_path / "not_a_dir"
    root.write_text("occupied")
    return SnapshotLocation(root, "mirror")


@pytest.fixture
def queue(primary, mirror, clock):
    return MemorySyncQueue(MirroredWriter(primary, mirror), max_retries=3, clock=clock)
