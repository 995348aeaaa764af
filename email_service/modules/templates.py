"""
Template Renderer
Renders the HTML bodies of outbound notification emails with Jinja2
"""

import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound, select_autoescape

from .exceptions import TemplateNotFoundError, TemplateRenderError


logger = logging.getLogger(__name__)

CONTACT_ADMIN_TEMPLATE = "contact_admin_email.html"
CONTACT_USER_TEMPLATE = "contact_email.html"
AANMELDING_ADMIN_TEMPLATE = "aanmelding_admin_email.html"
AANMELDING_USER_TEMPLATE = "aanmelding_email.html"

TEMPLATE_NAMES = (
    CONTACT_ADMIN_TEMPLATE,
    CONTACT_USER_TEMPLATE,
    AANMELDING_ADMIN_TEMPLATE,
    AANMELDING_USER_TEMPLATE,
)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


class TemplateRenderer:
    """
    Jinja2 renderer restricted to a fixed set of template names

    Templates are looked up in ``template_dir`` first and fall back to the
    packaged defaults, so a deployment can override a single template.
    Output is HTML-autoescaped; form input never reaches the mail body as
    markup.

    Args:
        template_dir: Optional directory with overriding templates
        template_names: Names that may be rendered
    """

    def __init__(
        self,
        template_dir: Optional[Union[str, Path]] = None,
        template_names: Iterable[str] = TEMPLATE_NAMES,
    ):
        search_path: List[str] = []
        if template_dir:
            search_path.append(str(template_dir))
        search_path.append(str(DEFAULT_TEMPLATE_DIR))

        self.template_names = frozenset(template_names)
        self.env = Environment(
            loader=FileSystemLoader(search_path),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.logger = logging.getLogger("TemplateRenderer")

    def render(self, template_name: str, data: Any) -> str:
        """
        Render a registered template

        Args:
            template_name: One of the registered template names
            data: Dataclass instance or mapping used as template context

        Raises:
            TemplateNotFoundError: name not registered or file missing
            TemplateRenderError: template failed to render
        """
        if template_name not in self.template_names:
            self.logger.error(f"Template not found: {template_name}")
            raise TemplateNotFoundError(template_name)

        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            self.logger.error(f"Template file missing: {template_name}")
            raise TemplateNotFoundError(template_name) from e
        except TemplateError as e:
            raise TemplateRenderError(f"failed to load template {template_name}: {e}") from e

        try:
            body = template.render(**self._context(data))
        except TemplateError as e:
            raise TemplateRenderError(f"failed to execute template {template_name}: {e}") from e

        self.logger.debug(f"Rendered {template_name} ({len(body)} chars)")
        return body

    @staticmethod
    def _context(data: Any) -> Mapping[str, Any]:
        if data is None:
            return {}
        if is_dataclass(data) and not isinstance(data, type):
            return asdict(data)
        if isinstance(data, Mapping):
            return dict(data)
        raise TypeError(f"Unsupported template data type: {type(data).__name__}")
