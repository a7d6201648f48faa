import asyncio

import pytest

from plugins.cms_marker.models import (
    KIND_PROP,
    KIND_STATIC,
    KIND_VARIABLE,
    AttributeSource,
    ColorClasses,
    ManifestEntry,
)
from plugins.cms_marker.source_finder import (
    SourceFinder,
    update_attribute_sources,
    update_color_class_sources,
)

HEADER = """<header>
  <h1>Services</h1>
</header>"""

SERVICES_PAGE = """---
const title = 'Services'
---

<h1>{title}</h1>"""

MIXED = """---
const title = 'Services'
---
<h1>Services</h1>
<h1>{title}</h1>"""

ABOUT = """<section>
  <p class="lead">
    Multi line text here
  </p>
  <p>We deliver high quality</p>
  <p>We deliver high quality prints within two days.</p>
</section>"""

NAV = """<nav>
  <a href="/">Home</a> <a href="/about">About</a>
</nav>"""

LIST = "<ul><li>Alpha</li><li>Beta</li></ul>"

CARD_USAGE = """<Card
  title="Our services"
  href="/services"
/>"""


def find(context, text, tag, indexed=False):
    async def run():
        if indexed:
            await context.index.build()
        return await SourceFinder(context).find_source_location(text, tag)

    return asyncio.run(run())


class TestFindSourceLocation:
    """Rendered text back to the template line that authored it."""

    def test_short_exact_match(self, make_context):
        context = make_context({"src/components/Header.astro": HEADER})
        location = find(context, "Services", "h1")

        assert location.file == "src/components/Header.astro"
        assert location.line == 2
        assert location.kind == KIND_STATIC
        assert location.snippet == "  <h1>Services</h1>"
        assert location.variable_name is None

    def test_variable_indirection(self, make_context):
        context = make_context({"src/pages/services.astro": SERVICES_PAGE})
        location = find(context, "Services", "h1")

        assert location.file == "src/pages/services.astro"
        assert location.line == 2
        assert location.kind == KIND_VARIABLE
        assert location.variable_name == "title"
        assert location.definition_line == 2
        assert location.snippet == "const title = 'Services'"

    def test_variable_beats_static_text(self, make_context):
        context = make_context({"src/components/A.astro": MIXED})
        location = find(context, "Services", "h1")
        assert location.kind == KIND_VARIABLE
        assert location.line == 2

    def test_components_take_precedence_on_ties(self, make_context):
        context = make_context(
            {
                "src/pages/a.astro": HEADER,
                "src/components/Z.astro": HEADER,
            }
        )
        assert find(context, "Services", "h1").file == "src/components/Z.astro"

    def test_multi_line_snippet(self, make_context):
        context = make_context({"src/pages/about.astro": ABOUT})
        location = find(context, "Multi line text here", "p")
        assert location.line == 2
        assert location.snippet == '  <p class="lead">\n    Multi line text here\n  </p>'

    def test_long_text_prefers_full_coverage(self, make_context):
        context = make_context({"src/pages/about.astro": ABOUT})
        location = find(context, "We deliver high quality prints within two days.", "p")
        assert location.line == 6

    def test_prefix_fallback(self, make_context):
        context = make_context({"src/pages/about.astro": ABOUT})
        location = find(context, "We deliver high quality service to every customer", "p")
        assert location.line == 5

    @pytest.mark.parametrize("indexed", [False, True])
    def test_repeated_siblings_on_one_line(self, make_context, indexed):
        context = make_context({"src/components/Nav.astro": NAV, "src/components/List.astro": LIST})

        home = find(context, "Home", "a", indexed)
        about = find(context, "About", "a", indexed)
        beta = find(context, "Beta", "li", indexed)

        assert (home.file, home.line) == ("src/components/Nav.astro", 2)
        assert (about.file, about.line, about.kind) == ("src/components/Nav.astro", 2, KIND_STATIC)
        assert about.snippet == '  <a href="/">Home</a> <a href="/about">About</a>'
        assert (beta.file, beta.line) == ("src/components/List.astro", 1)

    def test_prop_fallback(self, make_context):
        context = make_context({"src/pages/index.astro": CARD_USAGE})
        location = find(context, "Our Services", "h2")

        assert location.kind == KIND_PROP
        assert location.line == 2
        assert location.variable_name == "title"

    def test_empty_and_unknown(self, make_context):
        context = make_context({"src/components/Header.astro": HEADER})
        assert find(context, "   ", "h1") is None
        assert find(context, "Nowhere to be found", "h1") is None
        assert find(context, "Services", "h6") is None

    def test_deterministic(self, make_context):
        context = make_context(
            {
                "src/components/Header.astro": HEADER,
                "src/pages/services.astro": SERVICES_PAGE,
            }
        )
        assert find(context, "Services", "h1") == find(context, "Services", "h1")

    def test_indexed_and_fallback_agree(self, make_context):
        context = make_context(
            {
                "src/components/Header.astro": HEADER,
                "src/pages/services.astro": SERVICES_PAGE,
                "src/pages/about.astro": ABOUT,
                "src/pages/index.astro": CARD_USAGE,
            }
        )
        queries = [
            ("Services", "h1"),
            ("Multi line text here", "p"),
            ("We deliver high quality service to every customer", "p"),
            ("Our services", "h2"),
            ("Nothing", "p"),
        ]
        fallback = [find(context, text, tag) for text, tag in queries]
        indexed = [find(context, text, tag, indexed=True) for text, tag in queries]
        assert fallback == indexed


class TestEntrySources:
    """Attributes, color classes and snippets of resolved entries."""

    def test_update_attribute_sources(self):
        lines = ["<a", '  href="/contact"', '  class="text-blue-500"', ">Contact</a>"]
        attributes = {"href": AttributeSource("/contact")}
        update_attribute_sources(lines, 0, attributes, "src/components/Nav.astro")

        assert attributes["href"].source_path == "src/components/Nav.astro"
        assert attributes["href"].source_line == 2

    def test_update_color_class_sources(self):
        lines = ["<a", '  href="/contact"', '  class="text-blue-500"', ">Contact</a>"]
        colors = ColorClasses(text="text-blue-500", all_color_classes=["text-blue-500"])
        update_color_class_sources(lines, 0, colors, "src/components/Nav.astro")
        assert colors.source_line == 3

    def test_extract_source_inner_html(self, make_context):
        context = make_context({"src/components/Header.astro": HEADER})
        inner = asyncio.run(
            SourceFinder(context).extract_source_inner_html("src/components/Header.astro", 2, "h1")
        )
        assert inner == "Services"

    def test_enhance_hinted_entries(self, make_context):
        context = make_context({"src/components/Header.astro": HEADER})
        entry = ManifestEntry(
            id="cms-0",
            tag="h1",
            text="Services",
            source_path="src/components/Header.astro",
            source_line=2,
        )
        asyncio.run(SourceFinder(context).enhance_entries_with_source_snippets({"cms-0": entry}))

        assert entry.source_snippet == "Services"
        assert len(entry.source_hash) == 64
