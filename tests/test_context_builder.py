import os

import pytest

from codebot.config import DEFAULT_EXCLUDE_DIRS
from codebot.context_builder import ContextBuilder, FileRecord, scan
from codebot.errors import ScanError


def write(root, rel, content):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_scan_collects_all_files_with_full_content(tmp_path):
    write(tmp_path, "index.js", "console.log(1)\n")
    write(tmp_path, "src/a.js", "export const a = 1;\n")
    write(tmp_path, "src/deep/er/b.js", "b")

    snapshot = scan(tmp_path, DEFAULT_EXCLUDE_DIRS)

    assert {r.path: r.content for r in snapshot} == {
        "index.js": "console.log(1)\n",
        "src/a.js": "export const a = 1;\n",
        "src/deep/er/b.js": "b",
    }


def test_excluded_names_are_pruned_at_any_depth(tmp_path):
    write(tmp_path, "node_modules/sub/file.js", "x")
    write(tmp_path, "pkg/node_modules/lib/index.js", "x")
    write(tmp_path, "pkg/.git/HEAD", "ref")
    write(tmp_path, "src/node_modules_extra.js", "kept")

    paths = [r.path for r in scan(tmp_path, ["node_modules", ".git"])]

    assert paths == ["src/node_modules_extra.js"]


def test_order_follows_traversal_not_global_sort(tmp_path):
    write(tmp_path, "a/z.txt", "1")
    write(tmp_path, "a.txt", "2")
    write(tmp_path, "b.txt", "3")

    paths = [r.path for r in scan(tmp_path, [])]

    # "a" sorts before "a.txt" so its subtree is visited first
    assert paths == ["a/z.txt", "a.txt", "b.txt"]


def test_binary_and_non_utf8_files_are_skipped(tmp_path):
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x00\x00")
    (tmp_path / "latin1.txt").write_bytes("caf\xe9".encode("latin-1"))
    write(tmp_path, "ok.txt", "fine")

    assert [r.path for r in scan(tmp_path, [])] == ["ok.txt"]


def test_line_endings_are_preserved(tmp_path):
    (tmp_path / "dos.txt").write_bytes(b"one\r\ntwo\r\n")

    (record,) = scan(tmp_path, [])

    assert record.content == "one\r\ntwo\r\n"


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_symlinked_directories_are_not_followed(tmp_path):
    write(tmp_path, "real/file.txt", "data")
    os.symlink(tmp_path / "real", tmp_path / "loop", target_is_directory=True)

    assert [r.path for r in scan(tmp_path, [])] == ["real/file.txt"]


@pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs POSIX permissions as non-root")
def test_unreadable_file_aborts_the_scan(tmp_path):
    secret = write(tmp_path, "secret.txt", "nope")
    secret.chmod(0)
    try:
        with pytest.raises(ScanError):
            scan(tmp_path, [])
    finally:
        secret.chmod(0o644)


def test_missing_root_is_a_scan_error(tmp_path):
    with pytest.raises(ScanError):
        ContextBuilder(tmp_path / "missing", []).scan()


def test_empty_directory_gives_empty_snapshot(tmp_path):
    assert scan(tmp_path, []) == ()


def test_file_record_wire_shape():
    assert FileRecord("a.py", "x = 1").as_wire() == {"filepath": "a.py", "code": "x = 1"}


def test_excluded_files_match_relative_paths_only(tmp_path):
    write(tmp_path, "codebot_config.json", '{"apiKey": "secret"}')
    write(tmp_path, "sub/codebot_config.json", "{}")

    paths = [r.path for r in ContextBuilder(tmp_path, [], exclude_files=["codebot_config.json"]).scan()]

    assert paths == ["sub/codebot_config.json"]
