from pathlib import Path

from travel_matrix.persistence.filesystem import FileStorage


def test_file_storage_resolves_relative_paths(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)

    assert storage.resolve("travel.json") == tmp_path / "travel.json"
    assert storage.resolve(tmp_path / "other" / "x.json") == tmp_path / "other" / "x.json"


def test_file_storage_writes_json_atomically(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)

    target = storage.write_json("nested/summary.json", {"hello": "world"})

    assert target == tmp_path / "nested" / "summary.json"
    assert target.read_text(encoding="utf-8") == '{\n  "hello": "world"\n}'
    assert storage.read_json("nested/summary.json") == {"hello": "world"}
    assert [path.name for path in target.parent.iterdir()] == ["summary.json"]
