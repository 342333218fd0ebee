from datetime import datetime, timezone
from pathlib import Path

from stencil.build import THEMES_DIR
from stencil.content import Page, Section
from stencil.context import build_context
from stencil.environment import Environment
from stencil.loaders import FileSystemLoader

CONFIG = {
    "title": "Site",
    "description": "Notes",
    "base_url": "https://example.com",
    "extra": {
        "footer_links": [
            {"name": "Home", "url": "$BASE_URL/"},
            {"name": "Blog", "url": "$BASE_URL/blog/"},
        ]
    },
}


def theme_env():
    return Environment(FileSystemLoader(THEMES_DIR / "default" / "templates"))


def make_page(title, slug, date=None):
    return Page(
        title=title,
        path=f"/blog/{slug}/",
        slug=slug,
        content="<p>Body</p>",
        source_path=Path(f"content/blog/{slug}.md"),
        section="/blog/",
        date=date,
    )


def test_footer_links_replace_base_url_and_separate_items():
    html = theme_env().render("base.html", build_context(CONFIG))
    assert '<a href="https://example.com/">Home</a> | ' in html
    assert '<a href="https://example.com/blog/">Blog</a>' in html
    assert "Blog</a> |" not in html
    assert "$BASE_URL" not in html
    assert "Built with" not in html


def test_built_with_block_is_optional():
    config = dict(CONFIG, extra={"show_built_with": True})
    html = theme_env().render("base.html", build_context(config))
    assert "Built with Stencil" in html
    assert "<nav>" not in html


def test_page_with_date_is_an_article():
    page = make_page("Post", "post", date=datetime(2021, 5, 1, tzinfo=timezone.utc))
    html = theme_env().render("page.html", build_context(CONFIG, page=page))
    assert '<meta property="og:type" content="article">' in html
    assert '<meta property="article:published_time" content="2021-05-01T00:00:00+00:00">' in html
    assert '<meta property="og:url" content="https://example.com/blog/post/">' in html
    assert "<title>Post | Site</title>" in html


def test_page_without_date_is_a_website():
    html = theme_env().render("page.html", build_context(CONFIG, page=make_page("Post", "post")))
    assert '<meta property="og:type" content="website">' in html
    assert "published_time" not in html
    assert "<time" not in html


def test_prev_and_next_links_only_when_adjacent_pages_exist():
    page = make_page("Middle", "middle")
    html = theme_env().render("page.html", build_context(CONFIG, page=page))
    assert 'rel="prev"' not in html
    assert 'rel="next"' not in html

    page.earlier = make_page("Old", "old")
    page.later = make_page("New", "new")
    html = theme_env().render("page.html", build_context(CONFIG, page=page))
    assert '<link rel="prev" href="https://example.com/blog/old/">' in html
    assert '<link rel="next" href="https://example.com/blog/new/">' in html


def test_page_og_image_falls_back_to_site_image():
    config = dict(CONFIG, extra={"og_image": "img/site.png"})
    page = make_page("Post", "post")
    html = theme_env().render("page.html", build_context(config, page=page))
    assert '<meta property="og:image" content="https://example.com/img/site.png">' in html

    page.extra = {"image": "img/post.png"}
    html = theme_env().render("page.html", build_context(config, page=page))
    assert '<meta property="og:image" content="https://example.com/img/post.png">' in html
    assert "site.png" not in html


def test_section_lists_pages_with_macro():
    pages = [
        make_page("Newer", "newer", date=datetime(2021, 6, 1, tzinfo=timezone.utc)),
        make_page("Older", "older"),
    ]
    section = Section(title="Blog", path="/blog/", pages=pages)
    html = theme_env().render("section.html", build_context(CONFIG, section=section))
    assert html.count('<article class="summary">') == 2
    assert '<a href="https://example.com/blog/newer/">Newer</a>' in html
    assert "June  1, 2021" in html


def test_empty_section():
    section = Section(title="Blog", path="/blog/")
    html = theme_env().render("section.html", build_context(CONFIG, section=section))
    assert "Nothing here yet." in html
