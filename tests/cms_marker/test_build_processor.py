import asyncio
import json

from bs4 import BeautifulSoup

from plugins.cms_marker.build_processor import (
    BuildProcessor,
    first_body_line,
    get_page_path,
    process_build_output,
)
from plugins.cms_marker.html_processor import COMPONENT_ID_ATTRIBUTE
from plugins.cms_marker.manifest_writer import ManifestWriter
from plugins.cms_marker.models import KIND_COLLECTION, KIND_STATIC, KIND_VARIABLE, ManifestEntry

HERO = """---
const title = 'Services'
---
<section class="hero">
  <h1>{title}</h1>
  <p>Fast and reliable printing for everyone.</p>
</section>"""

INDEX = """<main>
  <h2>Welcome home</h2>
</main>"""

HOME_HTML = (
    "<html><body><main>"
    "<h2>Welcome home</h2>"
    '<section class="hero"><h1>Services</h1><p>Fast and reliable printing for everyone.</p></section>'
    "<footer><p>Unmatched footer text</p></footer>"
    "</main></body></html>"
)

POST = """---
title: 3D Printing
---

## Intro

Body text here."""

POST_HTML = (
    "<html><body><h1>3D Printing</h1>"
    "<article><h2>Intro</h2><p>Body text here.</p></article>"
    "</body></html>"
)


def run_build(context, writer=None):
    writer = writer or ManifestWriter()
    summary = asyncio.run(process_build_output(context.project_root / "site", context, writer))
    return summary, writer


def read_soup(path):
    return BeautifulSoup(path.read_text(encoding="utf-8"), "html.parser")


class TestPagePaths:
    def test_get_page_path(self, tmp_path):
        assert get_page_path(tmp_path / "index.html", tmp_path) == "/"
        assert get_page_path(tmp_path / "about/index.html", tmp_path) == "/about"
        assert get_page_path(tmp_path / "blog/post.html", tmp_path) == "/blog/post"

    def test_first_body_line(self):
        assert first_body_line("\n\n## Intro\n\nText") == "## Intro"
        assert first_body_line("   \n") is None


class TestProcessBuildOutput:
    """A built site is marked, resolved, pruned and described in manifests."""

    SOURCES = {
        "src/components/Hero.astro": HERO,
        "src/pages/index.astro": INDEX,
        "site/index.html": HOME_HTML,
    }

    def test_resolves_entries(self, make_context):
        context = make_context(self.SOURCES)
        summary, writer = run_build(context)

        entries = writer.get_page_manifest("/").entries
        by_tag = {e.tag: e for e in entries.values()}
        assert set(by_tag) == {"h1", "h2", "p"}

        assert by_tag["h2"].source_path == "src/pages/index.astro"
        assert by_tag["h2"].source_line == 2
        assert by_tag["h2"].source_type == KIND_STATIC
        assert by_tag["h1"].source_path == "src/components/Hero.astro"
        assert by_tag["h1"].source_line == 2
        assert by_tag["h1"].source_type == KIND_VARIABLE
        assert by_tag["h1"].variable_name == "title"
        assert by_tag["p"].source_line == 6
        assert all(e.source_hash for e in entries.values())

        assert summary.total_pages == 1
        assert summary.success_count == 1
        assert summary.total_entries == 3
        assert summary.errors == []

    def test_unresolved_entries_are_pruned(self, make_context):
        context = make_context(self.SOURCES)
        _, writer = run_build(context)

        entries = writer.get_page_manifest("/").entries
        assert all(e.source_path or e.collection_name for e in entries.values())

        soup = read_soup(context.project_root / "site/index.html")
        marked = {el["data-cms-id"] for el in soup.find_all(attrs={"data-cms-id": True})}
        assert marked == set(entries)
        assert not soup.find("footer").p.has_attr("data-cms-id")

    def test_component_is_inferred(self, make_context):
        context = make_context(self.SOURCES)
        summary, writer = run_build(context)

        [component] = writer.get_global_manifest().components.values()
        assert component.component_name == "Hero"
        assert component.source_path == "src/components/Hero.astro"
        assert summary.total_components == 1

        soup = read_soup(context.project_root / "site/index.html")
        assert soup.find("section")[COMPONENT_ID_ATTRIBUTE] == component.id
        hero_entries = [e for e in writer.get_page_manifest("/").entries.values() if e.tag in ("h1", "p")]
        assert {e.parent_component_id for e in hero_entries} == {component.id}

    def test_single_entry_component_wraps_parent(self, make_context):
        context = make_context(
            {
                "src/components/Badge.astro": '<div class="badge-wrap">\n  <strong>Limited offer</strong>\n</div>',
                "site/index.html": '<html><body><div class="badge-wrap"><strong>Limited offer</strong></div></body></html>',
            }
        )
        _, writer = run_build(context)

        soup = read_soup(context.project_root / "site/index.html")
        wrapper = soup.find("div")
        [entry] = writer.get_page_manifest("/").entries.values()
        assert wrapper[COMPONENT_ID_ATTRIBUTE] == entry.parent_component_id
        assert not soup.find("strong").has_attr(COMPONENT_ID_ATTRIBUTE)

    def test_writes_manifests(self, make_context):
        context = make_context(self.SOURCES)
        run_build(context)

        page = json.loads((context.project_root / "site/index.json").read_text(encoding="utf-8"))
        assert len(page["entries"]) == 3
        assert (context.project_root / "site/cms-manifest.json").is_file()

    def test_manifest_generation_disabled(self, make_context):
        context = make_context(self.SOURCES, generate_manifest=False)
        summary, _ = run_build(context)

        assert not (context.project_root / "site/index.json").exists()
        assert not (context.project_root / "site/cms-manifest.json").exists()
        assert summary.total_entries == 0

    def test_deterministic_across_builds(self, make_context):
        context = make_context(self.SOURCES)
        _, first = run_build(context)
        first_entries = {k: (e.source_path, e.source_line) for k, e in first.get_page_manifest("/").entries.items()}

        (context.project_root / "site/index.html").write_text(HOME_HTML, encoding="utf-8")
        _, second = run_build(context)
        second_entries = {k: (e.source_path, e.source_line) for k, e in second.get_page_manifest("/").entries.items()}
        assert first_entries == second_entries

    def test_empty_site(self, make_context):
        context = make_context()
        (context.project_root / "site").mkdir()
        summary, _ = run_build(context)
        assert summary.total_pages == 0
        assert not context.index.built

    def test_page_without_sources_is_a_warning(self, make_context):
        context = make_context(
            {
                "src/components/Header.astro": "<header>\n  <h1>Services</h1>\n</header>",
                "site/index.html": "<html><body><h1>Services</h1></body></html>",
                "site/orphan.html": "<html><body><p>Nothing in the templates says this</p></body></html>",
            }
        )
        summary, writer = run_build(context)

        assert summary.errors == []
        assert summary.success_count == 2
        assert [w.context for w in context.errors.warnings] == ["orphan.html"]
        assert writer.get_page_manifest("/orphan").entries == {}


class TestPartialFailure:
    """One broken page does not stop the others."""

    def test_failed_page_is_reported(self, make_context):
        page = "<html><body><h1>Services</h1></body></html>"
        context = make_context(
            {
                "src/components/Header.astro": "<header>\n  <h1>Services</h1>\n</header>",
                "site/a.html": page,
                "site/b.html": b"\xff\xfe<html>\xff</html>",
                "site/c.html": page,
            },
            max_concurrent=2,
        )
        summary, writer = run_build(context)

        assert summary.total_pages == 3
        assert summary.success_count == 2
        assert [e.file for e in summary.errors] == ["b.html"]
        assert isinstance(summary.errors[0].cause, UnicodeDecodeError)
        assert [e.context for e in context.errors.errors] == ["b.html"]

        assert writer.get_page_manifest("/a") is not None
        assert writer.get_page_manifest("/c") is not None
        assert writer.get_page_manifest("/b") is None
        assert summary.total_entries == 2


class TestCollectionPages:
    """Markdown-backed pages: front matter resolves, the body is one unit."""

    SOURCES = {
        "src/content/services/3d-printing.md": POST,
        "site/services/3d-printing/index.html": POST_HTML,
    }

    def test_collection_page(self, make_context):
        context = make_context(self.SOURCES)
        _, writer = run_build(context)

        page = writer.get_page_manifest("/services/3d-printing")
        wrapper_id = page.collection.wrapper_id
        wrapper = page.entries[wrapper_id]
        assert wrapper.tag == "article"
        assert wrapper.content_path == "src/content/services/3d-printing.md"

        title = next(e for e in page.entries.values() if e.tag == "h1")
        assert title.source_type == KIND_COLLECTION
        assert title.source_line == 2
        assert title.variable_name == "title"
        assert title.collection_slug == "3d-printing"

    def test_wrapper_survives_pruning(self, make_context):
        context = make_context(self.SOURCES)
        _, writer = run_build(context)

        soup = read_soup(context.project_root / "site/services/3d-printing/index.html")
        article = soup.find("article")
        assert article["data-cms-markdown"] == "true"
        assert article["data-cms-id"] == writer.get_page_manifest("/services/3d-printing").collection.wrapper_id

        data = json.loads((context.project_root / "site/services/3d-printing.json").read_text(encoding="utf-8"))
        assert data["collection"]["wrapperId"] == article["data-cms-id"]
        assert data["collection"]["frontmatter"]["title"]["value"] == "3D Printing"


class TestResolveEntry:
    def test_hinted_entry_gets_snippet(self, make_context):
        context = make_context({"src/components/Header.astro": "<header>\n  <h1>Services</h1>\n</header>"})
        processor = BuildProcessor(context, ManifestWriter())
        entry = ManifestEntry(
            id="cms-0",
            tag="h1",
            text="Services",
            source_path="src/components/Header.astro",
            source_line=2,
        )
        asyncio.run(processor.resolve_entry(entry, None))
        assert entry.source_snippet == "Services"

    def test_prune_unresolved(self, make_context):
        processor = BuildProcessor(make_context(), ManifestWriter())
        entries = {
            "cms-0": ManifestEntry(id="cms-0", tag="p", text="a", source_path="src/a.astro"),
            "cms-1": ManifestEntry(id="cms-1", tag="p", text="b"),
            "cms-2": ManifestEntry(id="cms-2", tag="div", text="c", collection_name="blog"),
        }
        assert processor.prune_unresolved(entries) == ["cms-1"]
        assert set(entries) == {"cms-0", "cms-2"}

    def test_prune_inlines_dropped_children(self, make_context):
        processor = BuildProcessor(make_context(), ManifestWriter())
        entries = {
            "cms-0": ManifestEntry(
                id="cms-0",
                tag="p",
                text="Hello {{cms:cms-1}}",
                source_path="src/a.astro",
                child_ids=["cms-1", "cms-2"],
            ),
            "cms-1": ManifestEntry(id="cms-1", tag="em", text="big {{cms:cms-2}}", child_ids=["cms-2"]),
            "cms-2": ManifestEntry(id="cms-2", tag="b", text="news", source_path="src/a.astro"),
        }
        assert processor.prune_unresolved(entries) == ["cms-1"]
        assert entries["cms-0"].text == "Hello big {{cms:cms-2}}"
        assert entries["cms-0"].child_ids == ["cms-2"]

    def test_pruned_children_leave_no_dangling_references(self, make_context):
        context = make_context(
            {
                "src/components/Greeting.astro": "<p>Hello there friends <em>{name}</em></p>",
                "site/index.html": "<html><body><p>Hello there friends <em>xyzzy</em></p></body></html>",
            }
        )
        _, writer = run_build(context)

        entries = writer.get_page_manifest("/").entries
        [entry] = entries.values()
        assert entry.tag == "p"
        assert entry.text == "Hello there friends xyzzy"
        assert all(child in entries for child in entry.child_ids)
