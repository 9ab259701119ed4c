"""Template resolution and rendering for chop.

Every output target owns a template directory. Two templates matter:

- default: renders every ordinary page. Without it, the target renders
  no pages at all (assets are still copied).
- index: renders index documents. Without it, the default template is
  used instead.

The template's file extension decides both the content converter and
the extension of the written files.

Key classes:
- TemplateEngine: Jinja2 environment bound to one template directory.
- Template: A resolved template (possibly absent).
- TemplateResolver: Finds and compiles the default and index templates.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateSyntaxError
from jinja2 import Template as CompiledTemplate

from .errors import RenderError
from .renderers import DEFAULT_EXTENSION

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "default"
INDEX_TEMPLATE = "index"


def _json_default(value: Any) -> Any:
    """Serialize page mappings and YAML dates for the tojson filter."""
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


class TemplateEngine:
    """Template engine using Jinja2.

    Output is not autoescaped: converted content is inserted as-is, the
    way `{{ content_rendered }}` is expected to work.

    Attributes:
        template_dir: Directory searched by include and extends.
        env: Jinja2 environment.
    """

    def __init__(self, template_dir: Path):
        self.template_dir = template_dir
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.policies["json.dumps_kwargs"] = {
            "sort_keys": True,
            "default": _json_default,
        }

    def parse(self, source: str) -> CompiledTemplate:
        """Compile template source.

        Raises:
            TemplateSyntaxError: If the source is not a valid template.
        """
        return self.env.from_string(source)

    def render(self, compiled: CompiledTemplate, variables: Mapping[str, Any]) -> str:
        return compiled.render(dict(variables))

    def render_string(self, source: str, variables: Mapping[str, Any]) -> str:
        """Compile and render template source in one step."""
        return self.render(self.parse(source), variables)


@dataclass(frozen=True)
class Template:
    """A resolved template for one role.

    Attributes:
        name: Role of the template ("default" or "index").
        path: Template file, None when no template exists.
        compiled: Compiled template, None when absent.
    """

    name: str
    path: Path | None = None
    compiled: CompiledTemplate | None = field(default=None, compare=False)

    @property
    def exists(self) -> bool:
        return self.compiled is not None

    @property
    def extension(self) -> str:
        """Extension of the written files and key of the converter table."""
        if self.path is None or not self.path.suffix:
            return DEFAULT_EXTENSION
        return self.path.suffix


@dataclass(frozen=True)
class TemplateSet:
    """Default and index templates of one output target."""

    default: Template
    index: Template
    errors: tuple[RenderError, ...] = ()


class TemplateResolver:
    """Finds and compiles the templates of an output target.

    Attributes:
        target: Name of the output target, used in error reports.
        engine: Template engine for the target directory.
    """

    def __init__(self, target: str, engine: TemplateEngine):
        self.target = target
        self.engine = engine

    def list_templates(self) -> list[Path]:
        """List files directly under the template directory."""
        template_dir = self.engine.template_dir
        if not template_dir.is_dir():
            return []
        return sorted(p for p in template_dir.iterdir() if p.is_file())

    def find(self, name: str) -> Path | None:
        """Return the first template file whose stem is `name`."""
        for path in self.list_templates():
            if path.stem == name:
                return path
        return None

    def resolve(self) -> TemplateSet:
        """Resolve the default and index templates.

        A template that fails to compile is reported and treated as
        absent.

        Returns:
            TemplateSet with compile errors attached.
        """
        errors: list[RenderError] = []
        default = self._load(DEFAULT_TEMPLATE, errors)
        if not default.exists:
            logger.info(
                "[%s] No default template; pages will not be rendered", self.target
            )
        index = self._load(INDEX_TEMPLATE, errors)
        if not index.exists:
            index = default
        return TemplateSet(default=default, index=index, errors=tuple(errors))

    def _load(self, name: str, errors: list[RenderError]) -> Template:
        path = self.find(name)
        if path is None:
            return Template(name)
        try:
            source = path.read_text(encoding="utf-8")
            compiled = self.engine.parse(source)
        except TemplateSyntaxError as exc:
            errors.append(
                RenderError(
                    path,
                    self.target,
                    f"Template syntax error on line {exc.lineno}: {exc.message}",
                    exc,
                )
            )
            return Template(name)
        except OSError as exc:
            errors.append(RenderError(path, self.target, f"Cannot read template: {exc}", exc))
            return Template(name)
        return Template(name, path, compiled)
