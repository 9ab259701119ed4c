import asyncio
import datetime
import json
import logging
import time
from pathlib import Path

from chop.content import ContentFile
from chop.errors import BuildReport
from chop.render import RenderedPage, RenderPipeline
from chop.renderers import ConverterRegistry, PassthroughConverter
from chop.templates import TemplateEngine, TemplateResolver
from chop.typography import IdentityTransform


class SlowConverter:
    """Finishes documents in reverse order of their number."""

    markup = False

    def __init__(self, total: int):
        self.total = total

    def convert(self, text: str, link_prefix: str = "") -> str:
        time.sleep(0.005 * (self.total - int(text)))
        return text


def make_file(root: Path, unprefixed: str, body: str, **variables) -> ContentFile:
    name = unprefixed.rsplit("/", 1)[-1]
    return ContentFile(
        source_path=root / f"{unprefixed.lstrip('/')}.txt",
        variables=variables,
        raw_content=body,
        site_path=unprefixed,
        site_path_unprefixed=unprefixed,
        is_index=name == "index",
    )


def make_pipeline(tmp_path: Path, files: dict[str, str], **kwargs) -> RenderPipeline:
    template_dir = tmp_path / "templates" / "out"
    template_dir.mkdir(parents=True)
    for name, text in files.items():
        (template_dir / name).write_text(text, encoding="utf-8")
    engine = TemplateEngine(template_dir)
    templates = TemplateResolver("out", engine).resolve()
    return RenderPipeline(
        "out",
        tmp_path / "dist" / "out",
        engine,
        templates,
        kwargs.pop("report", BuildReport()),
        **kwargs,
    )


def run_pipeline(pipeline: RenderPipeline, files: list[ContentFile]) -> list[RenderedPage]:
    async def go():
        pages = await pipeline.render_pages(files)
        await pipeline.render_indexes(files, pages)
        return pages

    return asyncio.run(go())


def test_index_sees_every_page_in_discovery_order(tmp_path):
    total = 12
    files = [make_file(tmp_path, f"/p{i:02d}", str(i)) for i in range(total)]
    files.append(make_file(tmp_path, "/index", "0"))
    converters = ConverterRegistry(".txt")
    converters.register(".txt", SlowConverter(total), IdentityTransform())
    pipeline = make_pipeline(
        tmp_path,
        {
            "default.txt": "{{ content_rendered }}",
            "index.txt": "{{ pages|length }}:{% for p in pages %}{{ p.path }},{% endfor %}",
        },
        converters=converters,
    )

    pages = run_pipeline(pipeline, files)

    assert [p.path for p in pages] == [f"/p{i:02d}" for i in range(total)]
    index = (tmp_path / "dist" / "out" / "index.txt").read_text(encoding="utf-8")
    expected = ",".join(f"/p{i:02d}" for i in range(total))
    assert index == f"{total}:{expected},"
    assert pipeline.written == total + 1


def test_rendered_page_exposes_variables():
    page = RenderedPage(Path("a.txt"), {"title": "A", "items": [1]})
    assert page.title == "A"
    assert page["items"] == [1]
    assert "title" in page
    assert sorted(page) == ["items", "title"]
    assert len(page) == 2
    assert page.get("missing", "-") == "-"
    assert dict(page.items()) == {"title": "A", "items": [1]}
    assert sorted(page.keys()) == ["items", "title"]


def test_index_template_uses_page_mapping(tmp_path):
    files = [
        make_file(tmp_path, "/a", "A", title="A", date=datetime.date(2024, 5, 1)),
        make_file(tmp_path, "/b", "B"),
        make_file(tmp_path, "/index", ""),
    ]
    pipeline = make_pipeline(
        tmp_path,
        {
            "default.txt": "{{ content_rendered }}",
            "index.txt": (
                "{% for p in pages %}{{ p.get('title', 'untitled') }};{% endfor %}"
                "{% for key, value in pages[0].items() if key == 'title' %}{{ value }}{% endfor %}"
                "|{{ pages[0]|tojson }}"
            ),
        },
        converters=_passthrough_with_identity(),
    )
    run_pipeline(pipeline, files)
    index = (tmp_path / "dist" / "out" / "index.txt").read_text(encoding="utf-8")
    listing, data = index.split("|", 1)
    assert listing == "A;untitled;A"
    assert json.loads(data)["date"] == "2024-05-01"


def test_pages_without_default_template_are_not_written(tmp_path):
    files = [make_file(tmp_path, "/a", "A", title="A"), make_file(tmp_path, "/index", "")]
    pipeline = make_pipeline(tmp_path, {"index.html": "{% for p in pages %}{{ p.title }}{% endfor %}"})
    pages = run_pipeline(pipeline, files)
    assert [p.title for p in pages] == ["A"]
    assert not (tmp_path / "dist" / "out" / "a.html").exists()
    assert (tmp_path / "dist" / "out" / "index.html").read_text(encoding="utf-8") == "A"


def test_templated_documents_render_their_body(tmp_path):
    files = [
        make_file(tmp_path, "/a", "Hello {{ title }}", title="World", templated=True),
        make_file(tmp_path, "/b", "Hello {{ title }}", title="World"),
    ]
    converters = ConverterRegistry(".txt")
    converters.register(".txt", PassthroughConverter())
    pipeline = make_pipeline(
        tmp_path, {"default.txt": "{{ content_rendered }}"}, converters=converters
    )
    run_pipeline(pipeline, files)
    out = tmp_path / "dist" / "out"
    assert (out / "a.txt").read_text(encoding="utf-8") == "Hello World"
    assert (out / "b.txt").read_text(encoding="utf-8") == "Hello {{ title }}"


def test_typography_applies_to_output_and_raw_content(tmp_path):
    files = [make_file(tmp_path, "/a", 'He said "hi" -- twice')]
    pipeline = make_pipeline(
        tmp_path,
        {"default.html": "<main>{{ content_rendered }}</main><pre>{{ content }}</pre>"},
    )
    run_pipeline(pipeline, files)
    html = (tmp_path / "dist" / "out" / "a.html").read_text(encoding="utf-8")
    assert "<p>He said “hi” – twice</p>" in html
    # raw content was transformed before it reached the template
    assert "<pre>He said “hi” – twice</pre>" in html


def test_raw_content_left_alone_with_identity_transform(tmp_path):
    files = [make_file(tmp_path, "/a", 'He said "hi"')]
    pipeline = make_pipeline(
        tmp_path,
        {"default.txt": "{{ content }}"},
        raw_transform=IdentityTransform(),
        converters=_passthrough_with_identity(),
    )
    run_pipeline(pipeline, files)
    assert (tmp_path / "dist" / "out" / "a.txt").read_text(encoding="utf-8") == 'He said "hi"'


def _passthrough_with_identity() -> ConverterRegistry:
    converters = ConverterRegistry(".txt")
    converters.register(".txt", PassthroughConverter(), IdentityTransform())
    return converters


def test_render_errors_are_reported_per_document(tmp_path):
    report = BuildReport()
    files = [
        make_file(tmp_path, "/good", "fine", title="Good"),
        make_file(tmp_path, "/bad", "{% if %}", templated=True),
    ]
    pipeline = make_pipeline(
        tmp_path,
        {"default.txt": "{{ title }}|{{ content_rendered }}"},
        report=report,
        converters=_passthrough_with_identity(),
    )
    pages = run_pipeline(pipeline, files)

    assert [p.path for p in pages] == ["/good"]
    assert (tmp_path / "dist" / "out" / "good.txt").read_text(encoding="utf-8") == "Good|fine"
    assert not (tmp_path / "dist" / "out" / "bad.txt").exists()
    assert report.counts() == {"render": 1}
    target, error = report.errors[0]
    assert target == "out"
    assert error.source_path.name == "bad.txt"


def test_template_errors_are_reported(tmp_path):
    report = BuildReport()
    files = [make_file(tmp_path, "/a", "x")]
    pipeline = make_pipeline(
        tmp_path,
        {"default.txt": "{{ missing.attr }}"},
        report=report,
        converters=_passthrough_with_identity(),
    )
    run_pipeline(pipeline, files)
    assert report.fatal_count == 1
    assert "Undefined variable" in report.errors[0][1].message


def test_output_path_escaping_destination_is_a_write_error(tmp_path):
    report = BuildReport()
    files = [make_file(tmp_path, "/../../escape", "x")]
    pipeline = make_pipeline(
        tmp_path,
        {"default.txt": "{{ content_rendered }}"},
        report=report,
        converters=_passthrough_with_identity(),
    )
    run_pipeline(pipeline, files)
    assert report.counts() == {"write": 1}
    assert not (tmp_path / "escape.txt").exists()


def test_unwritable_output_is_a_write_error(tmp_path, caplog):
    report = BuildReport()
    files = [make_file(tmp_path, "/a", "x"), make_file(tmp_path, "/b", "y")]
    pipeline = make_pipeline(
        tmp_path,
        {"default.txt": "{{ content_rendered }}"},
        report=report,
        converters=_passthrough_with_identity(),
    )
    # a directory sits where the page should be written
    (tmp_path / "dist" / "out" / "a.txt").mkdir(parents=True)

    with caplog.at_level(logging.ERROR, logger="chop.render"):
        run_pipeline(pipeline, files)

    assert report.counts() == {"write": 1}
    _, error = report.errors[0]
    assert error.source_path == tmp_path / "dist" / "out" / "a.txt"
    assert isinstance(error.original_error, OSError)
    assert (tmp_path / "dist" / "out" / "b.txt").read_text(encoding="utf-8") == "y"
    assert pipeline.written == 1
    assert report.fatal_count == 1


def test_render_error_log_names_target_once(tmp_path, caplog):
    files = [make_file(tmp_path, "/a", "x")]
    pipeline = make_pipeline(
        tmp_path,
        {"default.txt": "{{ missing.attr }}"},
        converters=_passthrough_with_identity(),
    )
    with caplog.at_level(logging.ERROR, logger="chop.render"):
        run_pipeline(pipeline, files)
    messages = [r.getMessage() for r in caplog.records if r.name == "chop.render"]
    assert len(messages) == 1
    assert messages[0].startswith("[out] ")
    assert messages[0].count("[out]") == 1
