from __future__ import annotations

from taskrunner.core import utils


def test_default_concurrency_is_twice_cpu_count(monkeypatch):
    monkeypatch.setattr(utils.os, "cpu_count", lambda: 4)
    assert utils.default_concurrency() == 8


def test_default_concurrency_falls_back_when_undetected(monkeypatch):
    monkeypatch.setattr(utils.os, "cpu_count", lambda: None)
    assert utils.default_concurrency() == utils.FALLBACK_CONCURRENCY


def test_iter_lines_is_lazy_and_complete(tmp_path):
    path = tmp_path / "f.txt"
    path.write_text("a\nb\nc", encoding="utf-8")
    assert list(utils.iter_lines(path)) == [b"a\n", b"b\n", b"c"]


def test_iter_lines_closes_file_when_abandoned(tmp_path):
    path = tmp_path / "f.txt"
    path.write_text("a\nb\n", encoding="utf-8")

    lines = utils.iter_lines(path)
    assert next(lines) == b"a\n"
    handle = lines.gi_frame.f_locals["f"]
    assert not handle.closed

    lines.close()
    assert handle.closed


def test_iter_lines_does_not_decode(tmp_path):
    path = tmp_path / "f.txt"
    path.write_bytes(b"ok\n\xff\xfe\n")
    assert list(utils.iter_lines(path)) == [b"ok\n", b"\xff\xfe\n"]
