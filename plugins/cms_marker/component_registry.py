"""
Catalog of reusable components: props, slots and description of every template
under the component directories.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from plugins.cms_marker.cache import ParseCache, find_declaration_block
from plugins.cms_marker.models import ComponentDefinition, ComponentProp

log = logging.getLogger("mkdocs.plugins.cms_marker")

PROPS_START_RE = re.compile(r"(?:interface\s+Props\s*(?:extends\s+[^{]+)?|type\s+Props\s*=\s*)\{")
BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
MEMBER_RE = re.compile(r"^(\w+)\s*(\?)?\s*:\s*(.+)$", re.DOTALL)
DESTRUCTURE_RE = re.compile(r"const\s*\{([^}]+)\}\s*=\s*Astro\.props")
DEFAULT_VALUE_RE = re.compile(r"(\w+)\s*=\s*(['\"`]?)([^'\"`},]+)\2")
NAMED_SLOT_RE = re.compile(r"<slot\s+name=[\"']([^\"']+)[\"']")
SLOT_TAG_RE = re.compile(r"<slot(?:\s+[^>]*)?\s*/?>")
DOC_COMMENT_RE = re.compile(r"^\s*/\*\*\s*(.*?)\s*\*/", re.DOTALL)


def balanced_block(text: str, match: "re.Match[str]") -> Optional[str]:
    """Content between the `{` ending `match` and its closing brace."""
    depth = 1
    for i in range(match.end(), len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return text[match.end() : i]
    return None


def _add_member(props: List[ComponentProp], member: str, description: Optional[str]) -> None:
    match = MEMBER_RE.match(member.strip())
    if match:
        name, optional, type_ = match.groups()
        props.append(
            ComponentProp(
                name=name,
                type=" ".join(type_.split()).rstrip(",;"),
                required=not optional,
                description=description,
            )
        )


def parse_props_body(body: str) -> List[ComponentProp]:
    """Split an interface body into members; nested braces and generics stay whole."""
    props: List[ComponentProp] = []
    buffer = ""
    depth = 0
    for line in BLOCK_COMMENT_RE.sub("", body).split("\n"):
        code, _, comment = line.partition("//")
        description = comment.strip() or None
        for i, ch in enumerate(code):
            if ch in "{([<":
                depth += 1
            elif ch in "})]" or (ch == ">" and code[i - 1 : i] != "="):
                depth -= 1
            if ch == ";" and depth == 0:
                _add_member(props, buffer, description)
                buffer = ""
            else:
                buffer += ch
        if depth == 0:
            _add_member(props, buffer, description)
            buffer = ""
        else:
            buffer += "\n"
    return props


def extract_props(frontmatter: str) -> List[ComponentProp]:
    match = PROPS_START_RE.search(frontmatter)
    body = balanced_block(frontmatter, match) if match else None
    props = parse_props_body(body) if body else []

    destructure = DESTRUCTURE_RE.search(frontmatter)
    if destructure:
        by_name = {p.name: p for p in props}
        for name, _, default in DEFAULT_VALUE_RE.findall(destructure.group(1)):
            if name in by_name:
                by_name[name].default_value = default.strip()
    return props


def extract_slots(content: str) -> List[str]:
    slots = NAMED_SLOT_RE.findall(content)
    if any("name=" not in tag for tag in SLOT_TAG_RE.findall(content)):
        slots.insert(0, "default")
    return slots


def extract_description(frontmatter: str) -> Optional[str]:
    match = DOC_COMMENT_RE.match(frontmatter)
    if not match:
        return None
    parts = [re.sub(r"^\s*\*\s?", "", line).strip() for line in match.group(1).split("\n")]
    return " ".join(p for p in parts if p) or None


class ComponentRegistry:
    def __init__(
        self,
        component_dirs: List[str],
        project_root: Path,
        extensions: Optional[List[str]] = None,
        cache: Optional[ParseCache] = None,
    ):
        self.component_dirs = list(component_dirs)
        self.project_root = Path(project_root)
        self.extensions = extensions or [".astro"]
        self.cache = cache or ParseCache(self.project_root)
        self._components: Dict[str, ComponentDefinition] = {}

    async def scan(self) -> Dict[str, ComponentDefinition]:
        for directory in self.component_dirs:
            for path in await self.cache.walk_files(self.project_root / directory, self.extensions):
                definition = await self.parse_component(path)
                if definition is not None:
                    self._components[definition.name] = definition
        log.debug(f"[cms_marker] registered {len(self._components)} component definitions")
        return self.get_components()

    async def parse_component(self, path: Path) -> Optional[ComponentDefinition]:
        parsed = await self.cache.get_parsed_file(path)
        if parsed is None:
            log.warning(f"[cms_marker] could not read component {path}")
            return None

        start, end = find_declaration_block(parsed.lines)
        frontmatter = "\n".join(parsed.lines[start + 1 : end]) if end > 0 else ""
        slots = extract_slots(parsed.content)
        return ComponentDefinition(
            name=path.stem,
            file=parsed.rel_path,
            props=extract_props(frontmatter),
            slots=slots or None,
            description=extract_description(frontmatter),
        )

    def get_components(self) -> Dict[str, ComponentDefinition]:
        return dict(self._components)
