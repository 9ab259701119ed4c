"""Content converters for chop.

A converter turns a document body (Markdown) into the format of an
output target. The target's template extension picks the converter
through a lookup table, so adding a format means adding a table entry.

Key classes:
- HTMLConverter: Markdown to HTML with heading ids, syntax highlighting,
  emoji shortcodes and unwrapped image paragraphs.
- GemtextConverter: Markdown to Gemtext, with emoji shortcodes.
- PassthroughConverter: Leaves the body unchanged.
- ConverterRegistry: Extension to (converter, typographic transform) table.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

import emoji
import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .html_utils import prefix_html_urls, prefix_url
from .protocols import ContentConverter, TextTransform
from .typography import SmartPunctuation

DEFAULT_EXTENSION = ".html"

# A paragraph holding nothing but one template tag, e.g. {% for p in pages %}
TEMPLATE_TAG_RE = re.compile(r"^\{%[^}]*?%\}$")
_TAG_STRIP_RE = re.compile(r"<[^>]+>")
# A paragraph holding only images, each possibly wrapped in a link
_IMAGES_ONLY_RE = re.compile(
    r"^(?:\s*(?:<a\b[^>]*>\s*)?<img\b[^>]*>(?:\s*</a>)?)+\s*$"
)


def emojize(text: str) -> str:
    """Replace :shortcode: emoji aliases, e.g. :tada:, with the emoji."""
    return emoji.emojize(text, language="alias")


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Args:
        text: The heading text, possibly containing inline HTML.

    Returns:
        URL-friendly slug suitable for anchor links.
    """
    slug = html.unescape(_TAG_STRIP_RE.sub("", text)).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _PrefixingHTMLRenderer(mistune.HTMLRenderer):
    """HTML renderer with link prefixing, heading ids and highlighting.

    Attributes:
        link_prefix: Prefix prepended to root-relative URLs.
    """

    def __init__(self, link_prefix: str = ""):
        super().__init__(escape=False)
        self.link_prefix = link_prefix
        self._heading_id_counts: dict[str, int] = {}

    def text(self, text: str) -> str:
        # Keep quotes literal so template expressions survive conversion.
        return html.escape(html.unescape(emojize(text)), quote=False)

    def paragraph(self, text: str) -> str:
        if TEMPLATE_TAG_RE.match(text.strip()):
            return text.strip() + "\n"
        if _IMAGES_ONLY_RE.match(text):
            return text.strip() + "\n"
        return super().paragraph(text)

    def heading(self, text: str, level: int, **attrs) -> str:
        base_id = _generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        if not heading_id:
            return f"<h{level}>{text}</h{level}>\n"
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def link(self, text: str, url: str, title: str | None = None) -> str:
        return super().link(text, prefix_url(url, self.link_prefix), title)

    def image(self, text: str, url: str, title: str | None = None) -> str:
        return super().image(text, prefix_url(url, self.link_prefix), title)

    def inline_html(self, html: str) -> str:
        return prefix_html_urls(html, self.link_prefix)

    def block_html(self, html: str) -> str:
        return prefix_html_urls(html, self.link_prefix) + "\n"

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        lang = info.split()[0] if info and info.strip() else ""
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = html.escape(code, quote=False)
        lang_class = f' class="language-{lang}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class _GemtextRenderer(mistune.HTMLRenderer):
    """Renders Markdown tokens as Gemtext.

    Gemtext has no inline links, so links met inside a block are
    collected and written as `=> url label` lines after that block.
    """

    NAME = "gemtext"

    def __init__(self, link_prefix: str = ""):
        super().__init__(escape=False)
        self.link_prefix = link_prefix
        self._links: list[tuple[str, str]] = []

    def _flush_links(self) -> str:
        lines = "".join(
            f"=> {url} {label}".rstrip() + "\n" for url, label in self._links
        )
        self._links = []
        return lines

    def text(self, text: str) -> str:
        return emojize(text)

    def emphasis(self, text: str) -> str:
        return text

    def strong(self, text: str) -> str:
        return text

    def strikethrough(self, text: str) -> str:
        return text

    def codespan(self, text: str) -> str:
        return f"`{text}`"

    def linebreak(self) -> str:
        return "\n"

    def softbreak(self) -> str:
        return " "

    def inline_html(self, html: str) -> str:
        return html

    def link(self, text: str, url: str, title: str | None = None) -> str:
        self._links.append((prefix_url(url, self.link_prefix), text))
        return text

    def image(self, text: str, url: str, title: str | None = None) -> str:
        self._links.append((prefix_url(url, self.link_prefix), text or title or ""))
        return text

    def paragraph(self, text: str) -> str:
        stripped = text.strip()
        if len(self._links) == 1 and stripped == self._links[0][1]:
            # A paragraph that is just a link becomes the link line itself.
            return self._flush_links() + "\n"
        if TEMPLATE_TAG_RE.match(stripped):
            return stripped + "\n" + self._flush_links()
        return stripped + "\n" + self._flush_links() + "\n"

    def heading(self, text: str, level: int, **attrs) -> str:
        marker = "#" * min(level, 3)
        return f"{marker} {text.strip()}\n" + self._flush_links() + "\n"

    def blank_line(self) -> str:
        return ""

    def thematic_break(self) -> str:
        return "---\n\n"

    def block_text(self, text: str) -> str:
        return text.strip() + "\n" + self._flush_links()

    def block_code(self, code: str, info: str | None = None) -> str:
        if not code.endswith("\n"):
            code += "\n"
        return f"```{(info or '').strip()}\n{code}```\n\n"

    def block_quote(self, text: str) -> str:
        lines = [line for line in text.strip().splitlines() if line.strip()]
        return "".join(f"> {line}\n" for line in lines) + "\n"

    def block_html(self, html: str) -> str:
        return html.strip() + "\n\n"

    def block_error(self, text: str) -> str:
        return ""

    def list(self, text: str, ordered: bool, **attrs) -> str:
        if attrs.get("depth", 0):
            return text
        return text + "\n"

    def list_item(self, text: str) -> str:
        lines = [line for line in text.strip().splitlines() if line.strip()]
        if not lines:
            return ""
        first, rest = lines[0], lines[1:]
        if not first.startswith(("* ", "=> ")):
            first = f"* {first}"
        return first + "\n" + "".join(f"{line}\n" for line in rest)


_BLANK_LINES_RE = re.compile(r"\n{3,}")


class HTMLConverter:
    """Converts Markdown to HTML."""

    name = "html"
    markup = True

    def convert(self, text: str, link_prefix: str = "") -> str:
        renderer = _PrefixingHTMLRenderer(link_prefix)
        markdown = mistune.create_markdown(
            renderer=renderer, plugins=["strikethrough", "table", "url"]
        )
        return markdown(text)


class GemtextConverter:
    """Converts Markdown to Gemtext."""

    name = "gemtext"
    markup = False

    def convert(self, text: str, link_prefix: str = "") -> str:
        renderer = _GemtextRenderer(link_prefix)
        markdown = mistune.create_markdown(
            renderer=renderer, plugins=["strikethrough", "url"]
        )
        rendered = _BLANK_LINES_RE.sub("\n\n", markdown(text)).strip()
        return rendered + "\n" if rendered else ""


class PassthroughConverter:
    """Leaves the document body unchanged."""

    name = "passthrough"
    markup = False

    def convert(self, text: str, link_prefix: str = "") -> str:
        return text


@dataclass(frozen=True)
class ConverterChoice:
    """Converter and typographic transform for one template extension."""

    converter: ContentConverter
    transform: TextTransform


class ConverterRegistry:
    """Lookup table from template extension to converter.

    Extensions are matched case-insensitively. Unknown extensions use the
    entry for the default extension.
    """

    def __init__(self, default_extension: str = DEFAULT_EXTENSION):
        self.default_extension = default_extension
        self._table: dict[str, ConverterChoice] = {}

    def register(
        self,
        extension: str,
        converter: ContentConverter,
        transform: TextTransform | None = None,
    ) -> None:
        """Register a converter for an extension.

        Args:
            extension: Extension with leading dot, e.g. ".gmi".
            converter: Converter used for that extension.
            transform: Typographic transform; defaults to smart
                punctuation matching the converter's output.
        """
        if transform is None:
            transform = SmartPunctuation(markup=converter.markup)
        self._table[extension.lower()] = ConverterChoice(converter, transform)

    def converter_for(self, extension: str) -> ConverterChoice:
        """Return the converter choice for a template extension."""
        choice = self._table.get((extension or self.default_extension).lower())
        if choice is None:
            choice = self._table[self.default_extension]
        return choice


def create_default_registry() -> ConverterRegistry:
    """Create a registry with the built-in converters."""
    registry = ConverterRegistry()
    html_converter = HTMLConverter()
    registry.register(".html", html_converter)
    registry.register(".xml", html_converter)
    registry.register(".gmi", GemtextConverter())
    passthrough = PassthroughConverter()
    registry.register(".txt", passthrough)
    registry.register(".md", passthrough)
    return registry


default_converter_registry = create_default_registry()
