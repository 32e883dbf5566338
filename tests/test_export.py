import base64
import json

import pytest

cairo = pytest.importorskip("cairo")

from knotboard.export import CanvasExporter, get_export_dir, import_document, read_document  # noqa: E402
from knotboard.geometry import Handle  # noqa: E402
from knotboard.scene import ItemKind  # noqa: E402


@pytest.fixture
def exporter(workspace):
    return CanvasExporter(workspace)


def populate(workspace):
    note = workspace.create_note(0, 0, "Title", "Body text that wraps across a few words", color="yellow")
    memo = workspace.create_memo(400, 0, "memo")
    image = workspace.create_media(ItemKind.IMAGE, 0, 300, b"fake image", "image/png")
    workspace.connect(note.id, Handle.RIGHT, memo.id, Handle.LEFT, "forward")
    workspace.set_connection_label("next", next(iter(workspace.scene.connections)))
    return note, memo, image


def test_document_embeds_media(workspace, exporter):
    _note, _memo, image = populate(workspace)
    document = exporter.to_document()

    assert document["format"] == "knotboard"
    assert document["name"] == "Test Canvas"
    assert len(document["items"]) == 3
    blob = document["media"][image.media_id]
    assert blob["mime_type"] == "image/png"
    assert base64.b64decode(blob["data"]) == b"fake image"

    assert "media" not in exporter.to_document(include_media=False)


def test_export_then_import_into_new_canvas(workspace, exporter, tmp_path):
    note, memo, image = populate(workspace)
    path = tmp_path / "board.json"
    assert exporter.export_json(path)

    data = read_document(path)
    workspace.new_canvas("Imported")
    result = import_document(workspace, data)

    assert result.items == 3
    assert result.connections == 1
    assert set(workspace.scene.items) == {note.id, memo.id, image.id}
    imported = workspace.scene.get_item(image.id)
    assert imported.media_id != image.media_id
    assert workspace.media.resolve(imported.media_id) == b"fake image"
    (conn,) = workspace.scene.connections.values()
    assert conn.label == "next"


def test_import_is_one_undo_step(workspace):
    workspace.create_note(0, 0, "existing")
    document = {"items": [{"id": "i9-000000", "kind": "memo", "content": "new"}], "connections": []}
    import_document(workspace, document)
    assert list(workspace.scene.items) == ["i9-000000"]

    workspace.undo()
    assert "i9-000000" not in workspace.scene.items
    assert len(workspace.scene) == 1


def test_read_document_rejects_other_files(tmp_path):
    not_json = tmp_path / "notes.txt"
    not_json.write_text("just some text", encoding="utf-8")
    with pytest.raises(ValueError):
        read_document(not_json)

    wrong_shape = tmp_path / "list.json"
    wrong_shape.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
    with pytest.raises(ValueError):
        read_document(wrong_shape)


def test_png_export(workspace, exporter, tmp_path):
    path = tmp_path / "board.png"
    assert not exporter.export_png(path)
    assert not path.exists()

    populate(workspace)
    assert exporter.export_png(path, scale=1.0)
    assert path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


def test_png_export_skips_filtered_items(workspace, exporter, tmp_path):
    workspace.create_note(0, 0, color="red")
    workspace.set_filter("blue")
    assert not exporter.export_png(tmp_path / "empty.png")


def test_export_dir(data_dir):
    assert get_export_dir() == data_dir / "exports"
