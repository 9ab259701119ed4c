from pathlib import Path

import pytest

from chop.config import BuildOptions, SiteConfig, load_config, merge_variables
from chop.content import ContentProcessor, FileContentLoader, SitePathResolver
from chop.errors import MalformedFrontmatterError
from chop.extractors import parse_frontmatter, serialize_frontmatter


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_frontmatter_round_trip():
    variables = {"title": "Hello", "tags": ["a", "b"], "draft": False, "count": 3}
    text = serialize_frontmatter(variables, "Body text.\n\nSecond paragraph.")
    parsed, body = parse_frontmatter(text, Path("doc.txt"))
    assert parsed == variables
    assert body == "Body text.\n\nSecond paragraph."


def test_frontmatter_empty_block_gives_empty_mapping():
    parsed, body = parse_frontmatter("---\n---\n\nHello\n", Path("doc.txt"))
    assert parsed == {}
    assert body == "Hello"
    assert serialize_frontmatter({}, "Hello") == "---\n---\nHello\n"


def test_body_may_contain_delimiter_lines():
    text = "---\ntitle: A\n---\nabove\n---\nbelow\n"
    parsed, body = parse_frontmatter(text, Path("doc.txt"))
    assert parsed == {"title": "A"}
    assert body == "above\n---\nbelow"


def test_frontmatter_accepts_crlf_line_endings():
    parsed, body = parse_frontmatter(
        "---\r\ntitle: A\r\n---\r\nBody\r\n", Path("doc.txt")
    )
    assert parsed == {"title": "A"}
    assert body == "Body"


@pytest.mark.parametrize(
    "text",
    [
        "Just a body\n",
        "intro\n---\ntitle: A\n---\nbody\n",
        "---\ntitle: A\nnever closed\n",
        "---\n- a\n- b\n---\nbody\n",
        "---\ntitle: [unclosed\n---\nbody\n",
    ],
)
def test_malformed_frontmatter_raises(text):
    with pytest.raises(MalformedFrontmatterError) as excinfo:
        parse_frontmatter(text, Path("bad.txt"))
    assert excinfo.value.source_path == Path("bad.txt")
    assert excinfo.value.category == "frontmatter"


def test_site_path_computed_from_location(tmp_path):
    resolver = SitePathResolver(tmp_path, ".txt", "/blog")
    assert resolver.resolve(tmp_path / "posts" / "a.txt", {}) == (
        "/blog/posts/a",
        "/posts/a",
    )
    assert resolver.resolve(tmp_path / "index.txt", {}) == ("/blog/index", "/index")
    assert resolver.resolve(tmp_path / "posts" / "a.txt", {}) == resolver.resolve(
        tmp_path / "posts" / "a.txt", {}
    )


def test_explicit_path_is_used_verbatim(tmp_path):
    resolver = SitePathResolver(tmp_path, ".txt", "/blog")
    site_path, unprefixed = resolver.resolve(
        tmp_path / "posts" / "a.txt", {"path": "/custom/place"}
    )
    assert unprefixed == "/custom/place"
    assert site_path == "/blog/custom/place"


def test_is_index_matches_stem_only(tmp_path):
    resolver = SitePathResolver(tmp_path, ".txt")
    assert resolver.is_index(tmp_path / "posts" / "index.txt")
    assert not resolver.is_index(tmp_path / "indexes.txt")


def test_loader_skips_build_directories(tmp_path):
    for name in [
        "index.txt",
        "about.txt",
        "posts/b.txt",
        "posts/a.txt",
        "templates/html/notes.txt",
        "dist/html/old.txt",
        ".cache/x.txt",
        ".git/HEAD.txt",
        "static/robots.txt",
        "drafts.md",
    ]:
        write(tmp_path / name, "---\n---\n")

    files = FileContentLoader(BuildOptions(project_root=tmp_path)).iter_files()
    assert [p.relative_to(tmp_path).as_posix() for p in files] == [
        "about.txt",
        "index.txt",
        "posts/a.txt",
        "posts/b.txt",
    ]


def test_content_processor_merges_site_variables(tmp_path):
    write(tmp_path / "config.yaml", "site_prefix: /blog\nauthor: Site\ntitle: Default\n")
    write(tmp_path / "posts" / "a.txt", "---\ntitle: Post\n---\nHi there\n")
    write(tmp_path / "index.txt", "---\ntitle: Home\n---\n")

    options = BuildOptions(project_root=tmp_path)
    site = load_config(options.config_path)
    files = ContentProcessor(options, site).load()

    index, post = files
    assert index.is_index and not post.is_index
    assert post.variables["title"] == "Post"
    assert post.variables["author"] == "Site"
    assert post.site_path == "/blog/posts/a"
    assert post.site_path_unprefixed == "/posts/a"

    variables = post.template_variables()
    assert variables["content"] == "Hi there"
    assert variables["path"] == "/blog/posts/a"
    assert variables["path_unprefixed"] == "/posts/a"
    # fresh dict each time
    variables["title"] = "changed"
    assert post.template_variables()["title"] == "Post"


def test_content_processor_stops_on_malformed_document(tmp_path):
    write(tmp_path / "a.txt", "---\ntitle: A\n---\n")
    write(tmp_path / "b.txt", "no frontmatter here\n")
    processor = ContentProcessor(BuildOptions(project_root=tmp_path), SiteConfig())
    with pytest.raises(MalformedFrontmatterError) as excinfo:
        processor.load()
    assert excinfo.value.source_path.name == "b.txt"


def test_content_processor_rejects_undecodable_document(tmp_path):
    (tmp_path / "a.txt").write_bytes(b"---\ntitle: A\n---\ncaf\xe9\n")
    processor = ContentProcessor(BuildOptions(project_root=tmp_path), SiteConfig())
    with pytest.raises(MalformedFrontmatterError) as excinfo:
        processor.load()
    assert excinfo.value.source_path.name == "a.txt"
    assert "UTF-8" in excinfo.value.message
    assert isinstance(excinfo.value.original_error, UnicodeDecodeError)


def test_load_config_missing_file(tmp_path):
    config = load_config(tmp_path / "config.yaml")
    assert dict(config.variables) == {}
    assert config.site_prefix == ""


@pytest.mark.parametrize("text", ["title: [unclosed\n", "- a\n- b\n"])
def test_load_config_degrades_to_empty(tmp_path, caplog, text):
    path = write(tmp_path / "config.yaml", text)
    config = load_config(path)
    assert dict(config.variables) == {}
    assert "Ignoring config" in caplog.text


def test_site_config_is_read_only(tmp_path):
    path = write(tmp_path / "config.yaml", "site_prefix: /docs\n")
    config = load_config(path)
    assert config.site_prefix == "/docs"
    with pytest.raises(TypeError):
        config.variables["site_prefix"] = "/other"


def test_merge_variables_document_wins():
    merged = merge_variables({"a": 1, "b": 2}, {"b": 3, "c": 4})
    assert merged == {"a": 1, "b": 3, "c": 4}
    assert list(merged) == ["a", "b", "c"]
