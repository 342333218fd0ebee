from datetime import datetime

from stencil.collections import PageCollection


class FakePage:
    def __init__(self, title, date=None, weight=0, draft=False):
        self.title = title
        self.date = date
        self.weight = weight
        self.draft = draft
        self.path = f"/{title.lower()}/"
        self.earlier = None
        self.later = None


def titles(pages):
    return [p.title for p in pages]


def test_published_drops_drafts():
    pages = PageCollection([FakePage("A"), FakePage("B", draft=True), FakePage("C")])
    assert len(pages) == 3
    assert titles(pages.published()) == ["A", "C"]
    assert pages[0].title == "A"


def test_sorted_by_date_newest_first_and_undated_last():
    pages = PageCollection(
        [
            FakePage("Old", date=datetime(2024, 1, 1)),
            FakePage("Zed"),
            FakePage("New", date=datetime(2024, 3, 1)),
            FakePage("Alpha"),
        ]
    )
    assert titles(pages.sorted_by("date")) == ["New", "Old", "Alpha", "Zed"]


def test_sorted_by_weight_title_and_none():
    pages = PageCollection(
        [FakePage("b", weight=2), FakePage("C", weight=1), FakePage("a", weight=2)]
    )
    assert titles(pages.sorted_by("weight")) == ["C", "a", "b"]
    assert titles(pages.sorted_by("title")) == ["a", "b", "C"]
    assert titles(pages.sorted_by("none")) == ["b", "C", "a"]


def test_link_adjacent_sets_earlier_and_later():
    newest = FakePage("Newest", date=datetime(2024, 3, 1))
    middle = FakePage("Middle", date=datetime(2024, 2, 1))
    oldest = FakePage("Oldest", date=datetime(2024, 1, 1))
    ordered = PageCollection([oldest, newest, middle]).sorted_by("date")
    ordered.link_adjacent()

    assert newest.later is None and newest.earlier is middle
    assert middle.later is newest and middle.earlier is oldest
    assert oldest.later is middle and oldest.earlier is None


def test_link_adjacent_follows_dates_not_listing_order():
    light = FakePage("Light", date=datetime(2024, 1, 1), weight=1)
    heavy = FakePage("Heavy", date=datetime(2024, 3, 1), weight=3)
    middle = FakePage("Middle", date=datetime(2024, 2, 1), weight=2)
    undated = FakePage("Undated", weight=0)
    ordered = PageCollection([heavy, middle, light, undated]).sorted_by("weight")
    assert titles(ordered) == ["Undated", "Light", "Middle", "Heavy"]
    ordered.link_adjacent()

    assert light.earlier is None and light.later is middle
    assert middle.earlier is light and middle.later is heavy
    assert heavy.earlier is middle and heavy.later is None
    assert undated.earlier is None and undated.later is None
