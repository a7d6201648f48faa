"""
Tailwind color palette and color utility classes.

The palette is the default Tailwind names plus custom colors declared as
`--color-<name>[-<shade>]` variables inside an `@theme` block of the project's
main stylesheet.
"""

import asyncio
import re
from pathlib import Path
from typing import Dict, List, Optional

from plugins.cms_marker.models import AvailableColors, ColorClasses, TailwindColor

DEFAULT_TAILWIND_COLORS = [
    "slate",
    "gray",
    "zinc",
    "neutral",
    "stone",
    "red",
    "orange",
    "amber",
    "yellow",
    "lime",
    "green",
    "emerald",
    "teal",
    "cyan",
    "sky",
    "blue",
    "indigo",
    "violet",
    "purple",
    "fuchsia",
    "pink",
    "rose",
]

STANDARD_SHADES = ["50", "100", "200", "300", "400", "500", "600", "700", "800", "900", "950"]

# Colors without shades
SPECIAL_COLORS = ["transparent", "current", "inherit", "white", "black"]

# Stylesheets searched for an @theme block, first hit wins
CSS_CANDIDATES = [
    "src/styles/global.css",
    "src/styles/tailwind.css",
    "src/styles/app.css",
    "src/app.css",
    "src/global.css",
    "src/index.css",
    "app/globals.css",
    "styles/globals.css",
]

THEME_BLOCK_RE = re.compile(r"@theme(?:\s+inline)?\s*\{([^}]+)\}", re.DOTALL)
COLOR_VAR_RE = re.compile(r"--color-([a-z]+)(?:-(\d+))?:", re.IGNORECASE)


def _color_pattern(prefix: str) -> "re.Pattern[str]":
    names = "|".join(DEFAULT_TAILWIND_COLORS + SPECIAL_COLORS)
    return re.compile(rf"^{re.escape(prefix)}-((?:{names})(?:-(\d+))?|([a-z]+)-(\d+))$")


# Field of ColorClasses -> class pattern; checked in this order
COLOR_CLASS_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    "bg": _color_pattern("bg"),
    "text": _color_pattern("text"),
    "border": _color_pattern("border"),
    "hover_bg": _color_pattern("hover:bg"),
    "hover_text": _color_pattern("hover:text"),
}


def color_type(class_name: str) -> Optional[str]:
    for key, pattern in COLOR_CLASS_PATTERNS.items():
        if pattern.match(class_name):
            return key
    return None


def is_color_class(class_name: str) -> bool:
    return color_type(class_name) is not None


def extract_color_classes(class_attr: Optional[str]) -> Optional[ColorClasses]:
    """Pick the color utilities out of a class attribute (first of each kind wins)."""
    if not class_attr:
        return None
    result = ColorClasses()
    for cls in class_attr.split():
        key = color_type(cls)
        if key is None:
            continue
        result.all_color_classes.append(cls)
        if getattr(result, key) is None:
            setattr(result, key, cls)
    return result if result.all_color_classes else None


def extract_colors_from_css(content: str) -> List[TailwindColor]:
    shades_by_name: Dict[str, set] = {}
    for block in THEME_BLOCK_RE.findall(content):
        for name, shade in COLOR_VAR_RE.findall(block):
            name = name.lower()
            if name in DEFAULT_TAILWIND_COLORS:
                continue
            shades = shades_by_name.setdefault(name, set())
            if shade:
                shades.add(shade)
    return [
        TailwindColor(name=name, shades=sorted(shades, key=int), is_custom=True)
        for name, shades in shades_by_name.items()
    ]


def _read_css(path: Path) -> str:
    return path.read_text(encoding="utf-8")


async def load_available_colors(project_root: Path) -> AvailableColors:
    custom: List[TailwindColor] = []
    for candidate in CSS_CANDIDATES:
        try:
            content = await asyncio.to_thread(_read_css, Path(project_root) / candidate)
        except (OSError, UnicodeDecodeError):
            continue
        custom = extract_colors_from_css(content)
        if custom:
            break

    special = [TailwindColor(name=n) for n in SPECIAL_COLORS]
    defaults = [TailwindColor(name=n, shades=list(STANDARD_SHADES)) for n in DEFAULT_TAILWIND_COLORS]
    return AvailableColors(
        colors=special + defaults + custom,
        default_colors=SPECIAL_COLORS + DEFAULT_TAILWIND_COLORS,
        custom_colors=[c.name for c in custom],
    )
