import pytest

from sigillum.app.errors import Conflict, NotFound, ValidationError
from sigillum.app.storage import (
    LocalStorageService,
    PresignedStorageService,
    StorageService,
    permanent_key,
    temp_upload_key,
)


def test_key_layout():
    assert permanent_key("ABCDEF2G3H4J") == "documents/ABCDEF2G3H4J.pdf"
    assert temp_upload_key("ABCDEF2G3H4J") == "uploads/temp/ABCDEF2G3H4J.pdf"


def test_save_read_exists(tmp_path):
    storage = LocalStorageService(tmp_path)
    key = permanent_key("ABCDEF2G3H4J")

    assert storage.exists(key) is False
    assert storage.save(b"%PDF-1.7 body", key) == key
    assert storage.exists(key) is True
    assert storage.read(key) == b"%PDF-1.7 body"
    assert (tmp_path / "documents" / "ABCDEF2G3H4J.pdf").is_file()


def test_save_never_replaces_existing_object(tmp_path):
    storage = LocalStorageService(tmp_path)

    storage.save(b"first", "documents/A.pdf")
    with pytest.raises(Conflict) as excinfo:
        storage.save(b"second", "documents/A.pdf")

    assert storage.read("documents/A.pdf") == b"first"
    assert str(tmp_path) not in excinfo.value.message


def test_save_leaves_no_partial_files(tmp_path):
    storage = LocalStorageService(tmp_path)

    storage.save(b"first", "documents/A.pdf")
    with pytest.raises(Conflict):
        storage.save(b"second", "documents/A.pdf")
    storage.save(b"third", "documents/B.pdf")

    assert sorted(p.name for p in (tmp_path / "documents").iterdir()) == [
        "A.pdf",
        "B.pdf",
    ]


def test_read_missing_is_not_found(tmp_path):
    storage = LocalStorageService(tmp_path)

    with pytest.raises(NotFound) as excinfo:
        storage.read("documents/MISSING.pdf")

    # Messages never leak absolute paths.
    assert str(tmp_path) not in excinfo.value.message


@pytest.mark.parametrize(
    "key",
    ["", "/etc/passwd", "../outside.pdf", "documents/../../x.pdf", "a\\b.pdf"],
)
def test_rejects_unsafe_keys(tmp_path, key):
    storage = LocalStorageService(tmp_path / "root")

    with pytest.raises(ValidationError):
        storage.save(b"x", key)
    with pytest.raises(ValidationError):
        storage.read(key)
    assert storage.exists(key) is False
    assert not (tmp_path / "outside.pdf").exists()


def test_local_backend_is_not_presigned(tmp_path):
    storage = LocalStorageService(tmp_path)

    assert isinstance(storage, StorageService)
    assert not isinstance(storage, PresignedStorageService)
