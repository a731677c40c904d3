"""Jinja2-based prompt template loading and rendering."""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

_TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
)


def render(template_name: str, **context: object) -> str:
    """Render a prompt template with the given context variables."""
    template = _env.get_template(template_name)
    return template.render(**context)


def render_string(source: str, **context: object) -> str:
    """Render a stored strategy body, which is itself a Jinja2 template."""
    return _env.from_string(source).render(**context)


def template_source(template_name: str) -> str:
    """Return the raw, unrendered text of a bundled template."""
    return (_TEMPLATE_DIR / template_name).read_text()


_html_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_html(template_name: str, **context: object) -> str:
    """Render a markup fragment with HTML autoescaping enabled."""
    return _html_env.get_template(template_name).render(**context).strip()
