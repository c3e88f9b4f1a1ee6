from pathlib import Path
from typing import Mapping, Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

# app/email_templates/*.html, all extending base.html
TEMPLATES_DIR = Path(__file__).resolve().parent / "email_templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


def render_template(name: str, context: Mapping[str, Any]) -> str:
    """
    Render a Jinja2 template to an HTML string.

    Example:
        html = render_template("new_lead.html", {"lead": lead, "photo_count": 2})
    """
    template = _env.get_template(name)
    return template.render(**context)
