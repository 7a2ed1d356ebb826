"""
Storybook HTML themes.

Each theme is a self-contained HTML document with inline CSS. All
substitutions are HTML-escaped; generated content has its newlines turned
into line breaks after escaping.
"""

from typing import List

from jinja2 import DictLoader, Environment
from markupsafe import Markup, escape

DEFAULT_THEME = "classic"

THEME_TEMPLATES = {
    "classic": (
        '<!DOCTYPE html>\n'
        '<html><head><meta charset="utf-8"/>'
        '<style>body{font-family: Georgia, serif;padding:24px;} h1{color:#333;} '
        '.section{margin-bottom:18px;}</style></head>'
        '<body><h1>{{ child_name }}\'s {{ interval }} Story</h1>'
        '<div class="content">{{ content }}</div></body></html>'
    ),
    "fairy": (
        '<!DOCTYPE html>\n'
        '<html><head><meta charset="utf-8"/>'
        '<style>body{font-family: "Comic Sans MS", cursive, sans-serif;'
        'background:linear-gradient(#fffaf0,#f0f8ff);padding:24px;} '
        'h1{color:#b13f9b;} .content{font-size:18px;color:#333}</style></head>'
        '<body><h1>✨ The Adventures of {{ child_name }} ✨</h1>'
        '<div class="content">{{ content }}</div></body></html>'
    ),
    "adventure": (
        '<!DOCTYPE html>\n'
        '<html><head><meta charset="utf-8"/>'
        '<style>body{font-family: "Trebuchet MS", sans-serif;padding:24px;background:#fff;} '
        'h1{color:#2b6cb0} .content{line-height:1.6}</style></head>'
        '<body><h1>{{ child_name }}\'s Great Adventures</h1>'
        '<div class="content">{{ content }}</div></body></html>'
    ),
}


def content_to_markup(content: str) -> Markup:
    """Escape generated text and convert newlines to ``<br/>``."""
    return escape(content).replace("\n", Markup("<br/>"))


class ThemeRenderer:
    """Fills a named theme template with a child's story."""

    def __init__(self, templates=None):
        """Initialize the renderer.

        Args:
            templates: Optional mapping of theme name to template source;
                must contain the default theme
        """
        templates = dict(templates or THEME_TEMPLATES)
        if DEFAULT_THEME not in templates:
            raise ValueError(f"Theme registry must include '{DEFAULT_THEME}'")
        self.env = Environment(loader=DictLoader(templates), autoescape=True)
        self._names = sorted(templates)

    def available_themes(self) -> List[str]:
        """Registered theme names."""
        return list(self._names)

    def resolve(self, theme: str) -> str:
        """Registered theme name for ``theme``; unknown names fall back to classic."""
        return theme if theme in self._names else DEFAULT_THEME

    def render(self, theme: str, child_name: str, interval: str, content: str) -> str:
        """Render a complete HTML storybook.

        Args:
            theme: Theme name; unknown names render the classic theme
            child_name: Child's display name
            interval: Interval label, e.g. "monthly"
            content: Generated story text

        Returns:
            HTML document
        """
        template = self.env.get_template(self.resolve(theme))
        return template.render(
            child_name=child_name,
            interval=interval,
            content=content_to_markup(content),
        )
