from datetime import datetime
from pathlib import Path

from stencil import utils


def test_slugify_and_titleize_strip_date():
    assert utils.slugify("2024-01-02-post-title") == "post-title"
    assert utils.slugify("Hello, World!") == "hello-world"
    assert utils.slugify("mixed-case-slug") == "mixed-case-slug"
    assert utils.slugify("!!!") == "index"
    assert utils.titleize("2024-01-02-post-title.md") == "Post Title"
    assert utils.titleize("snake_case_name.md") == "Snake Case Name"
    assert utils.titleize("---.md") == "Untitled"


def test_extract_date_from_name():
    assert utils.extract_date_from_name("2024-01-15-cool") == datetime(2024, 1, 15)
    assert utils.extract_date_from_name("invalid") is None
    assert utils.extract_date_from_name("2024-13-32-post") is None


def test_join_root_url():
    assert utils.join_root_url("https://example.com", "/posts/") == "https://example.com/posts/"
    assert (
        utils.join_root_url("https://example.com/blog/", "posts/")
        == "https://example.com/blog/posts/"
    )
    assert utils.join_root_url("", "/posts/") == "/posts/"


def test_path_helpers():
    assert utils.is_internal_path(Path("_drafts/post.md"))
    assert utils.is_internal_path(Path("blog/.hidden/post.md"))
    assert not utils.is_internal_path(Path("blog/_index.md"))
    assert utils.is_markdown(Path("page.MD"))
    assert not utils.is_markdown(Path("page.html"))


def test_ensure_clean_dir(tmp_path):
    target = tmp_path / "build"
    target.mkdir()
    (target / "old.txt").write_text("old", encoding="utf-8")
    utils.ensure_clean_dir(target)
    assert list(target.iterdir()) == []

    # fallback deletion path when rmtree is ineffective
    nested = tmp_path / "stubborn"
    (nested / "inner").mkdir(parents=True)
    (nested / "inner" / "file.txt").write_text("data", encoding="utf-8")
    original_rmtree = utils.shutil.rmtree

    def fake_rmtree(path, ignore_errors=False):
        return None

    utils.shutil.rmtree = fake_rmtree
    try:
        utils.ensure_clean_dir(nested)
    finally:
        utils.shutil.rmtree = original_rmtree
    assert nested.exists() and list(nested.iterdir()) == []

    missing = tmp_path / "missing-dir"
    utils.ensure_clean_dir(missing)
    assert missing.exists()
