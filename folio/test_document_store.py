#!/usr/bin/env python3
"""
Tests for the document store
"""

import pytest

from cms_errors import AlreadyExists, InvalidInput, NotFound, TooLarge
from document_store import DEFAULT_MAX_UPLOAD_SIZE, DocumentStore


async def test_create_then_read_returns_content(store):
    """Content written on create comes back byte for byte"""
    content = "# Hi\n\nÜmlaut and emoji ✓\r\n".encode("utf-8")
    stored = await store.create("about.md", content)

    assert stored == "about.md"
    assert await store.read("about.md") == content


async def test_create_stores_sanitized_name(store, data_dir):
    stored = await store.create("my notes.TXT")

    assert stored == "mynotes.txt"
    assert (data_dir / "mynotes.txt").is_file()
    assert await store.read("mynotes.txt") == b""


async def test_create_collision_ignores_whitespace_and_extension_case(store):
    await store.create("about.md", b"original")

    for variant in ("about.md", " about .MD", "about.Md  "):
        with pytest.raises(AlreadyExists):
            await store.create(variant, b"replacement")

    assert await store.read("about.md") == b"original"


async def test_read_missing_document(store):
    with pytest.raises(NotFound) as exc_info:
        await store.read("missing.txt")
    assert exc_info.value.message == "missing.txt does not exist."


async def test_read_directory_is_not_found(store, data_dir):
    (data_dir / "folder.md").mkdir()
    with pytest.raises(NotFound):
        await store.read("folder.md")


async def test_write_overwrites(store):
    await store.create("changes.txt", b"old content")
    await store.write("changes.txt", b"new content")
    assert await store.read("changes.txt") == b"new content"


async def test_delete_removes_from_listing(store):
    await store.create("about.md")
    await store.create("changes.txt")

    await store.delete("about.md")

    assert "about.md" not in store.list_documents()
    assert store.list_documents() == ["changes.txt"]


async def test_delete_missing_document(store):
    with pytest.raises(NotFound):
        await store.delete("missing.txt")


async def test_rename_moves_content(store):
    await store.create("draft.md", b"# Draft")

    stored = await store.rename("draft.md", "Final Version.md")

    assert stored == "FinalVersion.md"
    assert await store.read("FinalVersion.md") == b"# Draft"
    with pytest.raises(NotFound):
        await store.read("draft.md")


async def test_rename_collision(store):
    await store.create("one.txt", b"1")
    await store.create("two.txt", b"2")

    with pytest.raises(AlreadyExists):
        await store.rename("one.txt", "two.TXT")

    assert await store.read("one.txt") == b"1"
    assert await store.read("two.txt") == b"2"


async def test_rename_missing_document(store):
    with pytest.raises(NotFound):
        await store.rename("ghost.txt", "spirit.txt")


async def test_duplicate_appends_copy_suffix(store):
    await store.create("history.txt", b"1993 - Ruby is dreamed up")

    copy_name = await store.duplicate("history.txt")

    assert copy_name == "history_copy.txt"
    assert await store.read("history_copy.txt") == b"1993 - Ruby is dreamed up"


async def test_second_duplicate_collides(store):
    await store.create("history.txt")
    await store.duplicate("history.txt")

    with pytest.raises(AlreadyExists):
        await store.duplicate("history.txt")


async def test_duplicate_missing_document(store):
    with pytest.raises(NotFound):
        await store.duplicate("ghost.txt")


async def test_listing_is_sorted_and_skips_hidden_files_and_directories(store, data_dir):
    (data_dir / "zeta.txt").write_bytes(b"")
    (data_dir / "alpha.md").write_bytes(b"")
    (data_dir / ".users.yml.tmp").write_bytes(b"")
    (data_dir / "subdir").mkdir()

    assert store.list_documents() == ["alpha.md", "zeta.txt"]


def test_listing_reflects_disk_on_every_call(store, data_dir):
    assert store.list_documents() == []
    (data_dir / "late.txt").write_bytes(b"")
    assert store.list_documents() == ["late.txt"]


def test_listing_missing_data_dir(tmp_path):
    assert DocumentStore(tmp_path / "nowhere").list_documents() == []


@pytest.mark.parametrize("name", ["../escape.md", "a/b.md", "..", ".hidden", "", "bad\\name.txt"])
async def test_names_outside_the_data_dir_are_rejected(store, name):
    with pytest.raises(InvalidInput):
        await store.read(name)


async def test_move_uploaded(store, tmp_path):
    temp = tmp_path / "upload.tmp"
    temp.write_bytes(b"\x89PNG\r\n\x1a\n")

    stored = await store.move_uploaded(temp, "Logo.PNG")

    assert stored == "Logo.png"
    assert not temp.exists()
    assert await store.read("Logo.png") == b"\x89PNG\r\n\x1a\n"


async def test_move_uploaded_too_large_leaves_everything_untouched(store, tmp_path):
    temp = tmp_path / "upload.tmp"
    temp.write_bytes(b"x" * 2_000_000)

    with pytest.raises(TooLarge) as exc_info:
        await store.move_uploaded(temp, "big.png")

    assert exc_info.value.size == 2_000_000
    assert exc_info.value.limit == DEFAULT_MAX_UPLOAD_SIZE
    assert temp.exists()
    assert store.list_documents() == []


async def test_move_uploaded_limit_is_exclusive(store, tmp_path):
    temp = tmp_path / "upload.tmp"
    temp.write_bytes(b"x" * 10)

    with pytest.raises(TooLarge):
        await store.move_uploaded(temp, "exact.txt", max_size=10)

    assert await store.move_uploaded(temp, "exact.txt", max_size=11) == "exact.txt"


async def test_move_uploaded_collision(store, tmp_path):
    await store.create("notes.txt", b"keep me")
    temp = tmp_path / "upload.tmp"
    temp.write_bytes(b"replace me")

    with pytest.raises(AlreadyExists):
        await store.move_uploaded(temp, "notes.txt")

    assert temp.exists()
    assert await store.read("notes.txt") == b"keep me"
