"""Typographic post-processing ("smart punctuation") for chop.

Built on smartypants: straight quotes become curly ones, `--` an en dash,
`---` an em dash and `...` an ellipsis. Output uses Unicode characters
rather than entities, so the same transform works for HTML, Gemtext and
plain text. The transform is idempotent: running it over its own output
changes nothing.

Key classes:
- SmartPunctuation: The transform, markup-aware or plain.
- IdentityTransform: Leaves text untouched.
"""

from __future__ import annotations

import re

import smartypants

SMARTYPANTS_ATTRS = (
    smartypants.Attr.q | smartypants.Attr.D | smartypants.Attr.e | smartypants.Attr.u
)

_FENCE_RE = re.compile(r"^\s*```")
_LINK_LINE_RE = re.compile(r"^(=>\s*\S+)(.*)$", re.DOTALL)
# Thematic breaks, setext underlines and table delimiter rows.
_RULE_LINE_RE = re.compile(r"^\s*[-=*_|:+ \t]*[-=][-=*_|:+ \t]*$")
# Code spans, link targets, bare URLs and backslash escapes.
_PROTECTED_RE = re.compile(
    r"(`[^`\n]*`|\]\([^)\n]*\)|\b[a-zA-Z][a-zA-Z0-9+.-]*://[^\s<>()]+|\\.)"
)


def _smarten(text: str) -> str:
    return smartypants.smartypants(text, SMARTYPANTS_ATTRS)


class IdentityTransform:
    """Typographic transform that returns text unchanged."""

    def transform(self, text: str) -> str:
        return text


class SmartPunctuation:
    """Smart punctuation transform.

    In markup mode, smartypants leaves tags, comments and the contents of
    code-like elements (pre, code, kbd, script, style...) alone.

    Plain mode is for Markdown and Gemtext. It leaves alone fenced ```
    blocks, the URL of `=> url label` lines, rule and table delimiter
    lines, `inline code`, `](link targets)` and bare URLs.

    Attributes:
        markup: Whether the text is HTML/XML.
    """

    def __init__(self, markup: bool = False):
        self.markup = markup

    def transform(self, text: str) -> str:
        if self.markup:
            return _smarten(text)
        return self._transform_plain(text)

    def _transform_plain(self, text: str) -> str:
        out: list[str] = []
        in_fence = False
        for line in text.splitlines(keepends=True):
            if _FENCE_RE.match(line):
                in_fence = not in_fence
                out.append(line)
            elif in_fence or _RULE_LINE_RE.match(line):
                out.append(line)
            else:
                match = _LINK_LINE_RE.match(line)
                if match:
                    out.append(match.group(1) + self._transform_line(match.group(2)))
                else:
                    out.append(self._transform_line(line))
        return "".join(out)

    def _transform_line(self, line: str) -> str:
        out: list[str] = []
        for index, part in enumerate(_PROTECTED_RE.split(line)):
            if index % 2:
                out.append(part)
            elif out and not out[-1][-1].isspace():
                # a quote right after a protected span closes
                out.append(_smarten("x" + part)[1:])
            else:
                out.append(_smarten(part))
        return "".join(out)
