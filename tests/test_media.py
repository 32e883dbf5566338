import sqlite3

import pytest

from knotboard.media import MediaStore


@pytest.fixture
def store(db):
    canvas = db.create_canvas()
    return MediaStore(db, canvas.id)


def test_put_requires_open_canvas(db):
    with pytest.raises(ValueError):
        MediaStore(db).put(b"data", "image/png")


def test_put_makes_blob_resident(store, db):
    media_id = store.put(b"bytes", "image/png")
    assert store.is_resident(media_id)
    assert store.resolve(media_id) == b"bytes"
    assert db.get_media(media_id) == ("image/png", b"bytes")


def test_release_keeps_blob_until_purge(store, db):
    media_id = store.put(b"bytes", "image/png")
    store.release(media_id)
    assert not store.is_resident(media_id)
    assert store.resolve(media_id) is None

    assert store.ensure(media_id)
    assert store.is_resident(media_id)


def test_retain_releases_only_unlisted_handles(store, db):
    kept = store.put(b"keep", "image/png")
    dropped = store.put(b"drop", "image/png")
    assert store.retain([kept, "m-unknown"]) == 1
    assert store.is_resident(kept)
    assert not store.is_resident(dropped)
    assert db.get_media(dropped) == ("image/png", b"drop")


def test_purge_deletes_unreferenced(store, db):
    kept = store.put(b"keep", "image/png")
    dropped = store.put(b"drop", "video/mp4")
    assert store.purge_unreferenced([kept]) == 1
    assert db.get_media(dropped) is None
    assert not store.is_resident(dropped)
    assert not store.ensure(dropped)
    assert store.is_resident(kept)


def test_load_missing_blob(store):
    assert not store.load("m-nothing")
    assert store.load_all(["m-nothing", "m-other"]) == 0


def test_load_retries_storage_errors(store, db, monkeypatch):
    media_id = store.put(b"bytes", "image/png")
    store.clear()
    calls = []
    real_get = db.get_media

    def flaky(requested):
        calls.append(requested)
        if len(calls) < 3:
            raise sqlite3.OperationalError("database is locked")
        return real_get(requested)

    monkeypatch.setattr(db, "get_media", flaky)
    assert store.load(media_id)
    assert len(calls) == 3


def test_load_gives_up_after_repeated_errors(store, db, monkeypatch):
    def broken(requested):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(db, "get_media", broken)
    assert not store.load("m-1")


def test_decoder_builds_handles(db):
    canvas = db.create_canvas()
    decoded = []

    def decoder(mime_type, data):
        decoded.append(mime_type)
        return ("handle", len(data))

    store = MediaStore(db, canvas.id, decoder=decoder)
    media_id = store.put(b"1234", "image/png")
    assert store.resolve(media_id) == ("handle", 4)
    assert decoded == ["image/png"]


def test_purge_without_canvas_is_noop(db):
    assert MediaStore(db).purge_unreferenced([]) == 0
