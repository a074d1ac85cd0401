"""Badge rendering - SVG generation for streak badges.

Each file in ``rendering/templates`` is one badge style, keyed by its file
stem (``default.svg`` -> ``default``). Templates are Jinja2 with autoescaping
on, and receive ``label``, ``streak`` and the computed widths.
"""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
TEMPLATE_SUFFIX = ".svg"

# Rough per-character width of 11-13px sans-serif, for sizing the badge
_CHAR_WIDTH = 7
_PADDING = 20

_ERROR_BADGE_TEMPLATE = """\
<svg xmlns="http://www.w3.org/2000/svg" width="360" height="32" role="img" aria-label="{{ message }}">
  <rect width="100%" height="100%" fill="#f8d7da"/>
  <text x="8" y="20" fill="#721c24" font-family="sans-serif" font-size="13">{{ message }}</text>
</svg>
"""


class RenderError(Exception):
    """Raised when a badge cannot be rendered."""


class UnknownStyleError(RenderError):
    def __init__(self, style: str):
        super().__init__(f"Unknown badge style: {style!r}")
        self.style = style


def _text_width(text: str) -> int:
    return len(text) * _CHAR_WIDTH + _PADDING


class BadgeRenderer:
    """Renders streak badges from the SVG templates in ``templates_dir``."""

    def __init__(self, default_style: str, templates_dir: Path = TEMPLATES_DIR):
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(
                enabled_extensions=("svg",), default_for_string=True
            ),
            keep_trailing_newline=True,
        )
        self._styles = {
            path.stem: path.name
            for path in sorted(templates_dir.glob(f"*{TEMPLATE_SUFFIX}"))
        }
        if default_style not in self._styles:
            raise UnknownStyleError(default_style)
        self.default_style = default_style
        self._error_template = self._env.from_string(_ERROR_BADGE_TEMPLATE)

    @property
    def styles(self) -> list[str]:
        return list(self._styles)

    def render(self, style: str | None, streak: int, label: str = "streak") -> bytes:
        """Render ``streak`` with the named style (default style when empty).

        Negative streaks render as 0.
        """
        style = style or self.default_style
        template_name = self._styles.get(style)
        if template_name is None:
            raise UnknownStyleError(style)

        value = str(max(0, streak))
        label_width = _text_width(label)
        value_width = _text_width(value)
        svg = self._env.get_template(template_name).render(
            label=label,
            streak=value,
            label_width=label_width,
            value_width=value_width,
            width=label_width + value_width,
        )
        return svg.encode("utf-8")

    def render_error_badge(self, message: str) -> bytes:
        return self._error_template.render(message=message).encode("utf-8")
