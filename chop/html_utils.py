"""URL prefixing helpers for chop.

Sites deployed under a sub-path (https://example.com/blog/) need every
root-relative link to carry that path. These helpers prepend a prefix to
root-relative URLs only: a single leading slash, never two.

Functions:
    is_root_relative: Check if a URL is root-relative.
    prefix_url: Prepend a prefix to a root-relative URL.
    prefix_html_urls: Prefix root-relative URLs in raw HTML attributes.
"""

from __future__ import annotations

import re

# URL attribute regex pattern for finding href, src, action attributes
_URL_ATTR_RE = re.compile(
    r'(?P<prefix>\b(?:href|src|action)=["\'])(?P<url>[^"\']+)(?P<suffix>["\'])'
)

_ROOT_RELATIVE_RE = re.compile(r"^/(?!/)")


def is_root_relative(url: str) -> bool:
    """Check if a URL is root-relative.

    Examples:
        >>> is_root_relative('/posts/a')
        True

        >>> is_root_relative('//cdn.example.com/lib.js')
        False
    """
    return bool(_ROOT_RELATIVE_RE.match(url))


def prefix_url(url: str, link_prefix: str) -> str:
    """Prepend a link prefix to a root-relative URL.

    Absolute, protocol-relative, fragment and relative URLs are returned
    unchanged.

    Args:
        url: URL to rewrite.
        link_prefix: Prefix such as "/blog"; empty means no rewriting.

    Returns:
        The rewritten URL.

    Examples:
        >>> prefix_url('/about', '/blog')
        '/blog/about'

        >>> prefix_url('https://other.com/about', '/blog')
        'https://other.com/about'
    """
    if link_prefix and is_root_relative(url):
        return f"{link_prefix}{url}"
    return url


def prefix_html_urls(html: str, link_prefix: str) -> str:
    """Prefix root-relative URLs in href, src and action attributes.

    Args:
        html: HTML content to process.
        link_prefix: Prefix to prepend.

    Returns:
        HTML with root-relative URLs prefixed.
    """
    if not link_prefix:
        return html

    def repl(match: re.Match) -> str:
        url = prefix_url(match.group("url"), link_prefix)
        return f"{match.group('prefix')}{url}{match.group('suffix')}"

    return _URL_ATTR_RE.sub(repl, html)
