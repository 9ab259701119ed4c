from pathlib import Path

from chop.errors import (
    BuildReport,
    ConfigError,
    MalformedFrontmatterError,
    OptimizerError,
    RenderError,
    WriteError,
)
from chop.utils import copy_file, ensure_clean_dir, write_text_file


def test_ensure_clean_dir(tmp_path):
    target = tmp_path / "out"
    (target / "nested").mkdir(parents=True)
    (target / "nested" / "old.html").write_text("old", encoding="utf-8")
    ensure_clean_dir(target)
    assert target.is_dir()
    assert list(target.iterdir()) == []

    fresh = tmp_path / "a" / "b"
    ensure_clean_dir(fresh)
    assert fresh.is_dir()


def test_write_and_copy_create_parents(tmp_path):
    written = tmp_path / "x" / "y" / "page.html"
    write_text_file(written, "<p>“hi”</p>")
    assert written.read_text(encoding="utf-8") == "<p>“hi”</p>"

    copied = tmp_path / "z" / "page.html"
    copy_file(written, copied)
    assert copied.read_bytes() == written.read_bytes()


def test_error_messages_carry_context():
    error = RenderError(Path("posts/a.txt"), "html", "Undefined variable: x")
    assert str(error) == "posts/a.txt: Undefined variable: x"
    assert error.target == "html"
    assert error.category == "render"

    write_error = WriteError(Path("dist/a.html"), "disk full")
    assert str(write_error) == "dist/a.html: disk full"
    assert ConfigError(Path("config.yaml"), "bad").category == "config"
    assert MalformedFrontmatterError(Path("a.txt"), "bad").category == "frontmatter"


def test_report_exit_codes():
    report = BuildReport()
    assert report.exit_code() == 0
    assert report.exit_code(strict=True) == 0

    report.add("html", OptimizerError(Path("a.png"), "timed out"))
    assert report.exit_code() == 0
    assert report.exit_code(strict=True) == 1
    assert report.fatal_count == 0

    report.add("gemini", WriteError(Path("dist/a.gmi"), "denied"))
    assert report.exit_code() == 1
    assert report.counts() == {"optimizer": 1, "write": 1}
    assert [e.category for e in report.for_target("html")] == ["optimizer"]
    assert report.error_count == 2
