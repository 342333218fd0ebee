from datetime import date, datetime, timedelta, timezone

import pytest
from markupsafe import Markup

from stencil.environment import Environment
from stencil.errors import FilterError, TemplateError, UndefinedVariableError
from stencil.evaluator import Undefined, get_attribute, stringify
from stencil.filters import do_date, do_default, do_replace, format_datetime
from stencil.loaders import DictLoader


def render(source, context=None, name="<string>.html"):
    return Environment(DictLoader({})).render_string(source, context or {}, name=name)


def test_variable_lookup_through_mappings_lists_and_attributes():
    class Obj:
        title = "attr"

    context = {"site": {"pages": [{"title": "first"}]}, "obj": Obj()}
    assert render("{{ site.pages[0].title }}|{{ site.pages.0.title }}|{{ obj.title }}", context) == (
        "first|first|attr"
    )


def test_undefined_output_raises_with_path_and_location():
    with pytest.raises(UndefinedVariableError) as exc_info:
        render("ok\n{{ page.title }}")
    assert exc_info.value.path == "page.title"
    assert exc_info.value.lineno == 2
    assert str(exc_info.value) == "<string>.html:2: Variable `page.title` is not defined"


def test_undefined_is_false_in_conditions():
    source = "{% if page.later %}later{% else %}none{% endif %}"
    assert render(source) == "none"
    assert render("{{ missing or 'fallback' }}") == "fallback"
    assert render("{% if not missing and true %}yes{% endif %}") == "yes"


def test_existence_tests_never_raise():
    assert render("{{ page.date is defined }}") == "false"
    assert render("{{ page.date is undefined }}") == "true"
    assert render("{{ page.date is not defined }}", {"page": {"date": 1}}) == "false"


def test_default_filter_accepts_undefined():
    assert render('{{ missing | default(value="d") }}') == "d"
    assert render('{{ "" | default(value="d") }}') == ""
    assert render('{{ "" | default(value="d", boolean=true) }}') == "d"


def test_other_filters_reject_undefined():
    with pytest.raises(UndefinedVariableError):
        render("{{ missing | upper }}")


def test_operators():
    assert render('{{ "a" ~ 1 ~ true }}') == "a1true"
    assert render("{{ 7 % 3 }},{{ 2 + 3 * 4 }},{{ -2 }},{{ 10 / 4 }}") == "1,14,-2,2.5"
    assert render("{{ 1 < 2 }},{{ 'b' in 'abc' }},{{ 3 not in [1, 2] }}") == "true,true,true"
    assert render("{{ missing == none }}") == "false"


def test_invalid_operands_raise_template_error():
    with pytest.raises(TemplateError):
        render("{{ 1 / 0 }}")
    with pytest.raises(TemplateError):
        render("{{ 'a' - 1 }}")


def test_unknown_filter_test_and_function():
    with pytest.raises(FilterError):
        render("{{ 1 | nope }}")
    with pytest.raises(FilterError):
        render("{{ 1 is nope }}")
    with pytest.raises(FilterError):
        render("{{ nope() }}")


def test_replace_filter():
    context = {"url": "$BASE_URL/blog/", "base": "https://example.com"}
    assert render('{{ url | replace(from="$BASE_URL", to=base) }}', context) == (
        "https://example.com/blog/"
    )
    assert render('{{ "aXbX" | replace("X", "-") }}') == "a-b-"


def test_replace_filter_argument_errors():
    with pytest.raises(FilterError):
        do_replace("a", **{"from": "a"})
    with pytest.raises(FilterError):
        do_replace("a", **{"from": "", "to": "b"})
    with pytest.raises(FilterError):
        do_replace("a", **{"from": "a", "to": "b", "count": 1})
    with pytest.raises(FilterError):
        render('{{ "abc" | replace(from=1, to="x") }}')


def test_date_filter_formats():
    moment = datetime(2021, 5, 1, 14, 5, 9, tzinfo=timezone.utc)
    assert do_date(moment) == "2021-05-01"
    assert do_date(moment, format="%+") == "2021-05-01T14:05:09+00:00"
    assert do_date(moment, format="%A %a %B %b %e %I%p") == "Saturday Sat May May  1 02PM"
    assert do_date("2021-05-01", format="%+") == "2021-05-01T00:00:00+00:00"
    assert do_date(date(2021, 5, 1), format="%d/%m/%y") == "01/05/21"


def test_date_filter_offsets():
    moment = datetime(2021, 5, 1, 9, 30, tzinfo=timezone(timedelta(hours=2)))
    assert format_datetime(moment, "%z") == "+0200"
    assert format_datetime(moment, "%:z") == "+02:00"
    assert format_datetime(moment, "%+") == "2021-05-01T09:30:00+02:00"
    assert format_datetime(moment, "100%%") == "100%"


def test_date_filter_errors():
    moment = datetime(2021, 5, 1, tzinfo=timezone.utc)
    with pytest.raises(FilterError):
        do_date(moment, format="%Q")
    with pytest.raises(FilterError):
        do_date(moment, format="ends with %")
    with pytest.raises(FilterError):
        do_date("not a date")
    with pytest.raises(FilterError, match="out of range"):
        do_date(10**20)
    with pytest.raises(FilterError):
        render('{{ when | date(format="%Q") }}', {"when": moment})


def test_date_filter_in_template():
    moment = datetime(2021, 5, 1, tzinfo=timezone.utc)
    assert render('{{ when | date(format="%+") }}', {"when": moment}) == "2021-05-01T00:00:00+00:00"


def test_string_filters():
    assert render("{{ 'hello world' | upper }}") == "HELLO WORLD"
    assert render('{{ "a}}b" ~ "%}" }}') == "a}}b%}"
    assert render("{{ 'hello world' | title }}") == "Hello World"
    assert render("{{ '  x  ' | trim }}") == "x"
    assert render("{{ 'abcdef' | truncate(length=3) }}") == "abc…"
    assert render("{{ 'abc' | truncate(length=5) }}") == "abc"
    assert render("{{ '<b>x</b>' | striptags }}") == "x"
    assert render("{{ 'a b/c' | urlencode }}") == "a%20b/c"
    assert render("{{ 'abc' | length }}") == "3"


def test_markdown_filter_returns_safe_html():
    assert render("{{ '**hi**' | markdown }}") == "<p><strong>hi</strong></p>"
    assert render("{{ '**hi**' | markdown(inline=true) }}") == "<strong>hi</strong>"


def test_sequence_filters():
    context = {"items": [{"name": "b", "w": 2}, {"name": "a", "w": 1}]}
    assert render("{{ [3, 1, 2] | sort | join(sep=',') }}") == "1,2,3"
    assert render("{{ [3, 1, 2] | sort(reverse=true) | first }}") == "3"
    assert render("{{ (items | sort(attribute='w') | first).name }}", context) == "a"
    assert render("{{ (items | last).name }}", context) == "a"
    assert render("{{ [1, 2] | reverse | join(sep='-') }}") == "2-1"


def test_sort_by_missing_attribute():
    with pytest.raises(FilterError):
        render("{{ items | sort(attribute='nope') }}", {"items": [{"a": 1}, {"a": 2}]})


def test_json_encode():
    assert render("{{ data | json_encode | safe }}", {"data": {"a": [1, "x"]}}) == '{"a": [1, "x"]}'


def test_builtin_tests():
    assert render("{{ 3 is odd }},{{ 4 is even }},{{ none is none }}") == "true,true,true"
    assert render("{{ 'abc' is starting_with('a') }},{{ 'abc' is ending_with('c') }}") == "true,true"
    assert render("{{ [1] is iterable }},{{ 'a' is iterable }},{{ 1 is number }}") == "true,false,true"
    assert render("{{ d is mapping }},{{ d is containing('k') }}", {"d": {"k": 1}}) == "true,true"


def test_get_url_uses_base_url():
    context = {"config": {"base_url": "https://example.com/"}}
    assert render("{{ get_url(path='/about/') }}", context) == "https://example.com/about/"
    assert render("{{ get_url(path='feed.xml') }}", context) == "https://example.com/feed.xml"
    assert render("{{ get_url(path='blog', trailing_slash=true) }}", context) == (
        "https://example.com/blog/"
    )
    assert render("{{ get_url(path='https://other.org/x') }}", context) == "https://other.org/x"


def test_range_global():
    assert render("{{ range(end=3) | join(sep='-') }}") == "0-1-2"
    assert render("{{ range(10, 4, 3) | join(sep='-') }}") == "4-7"
    assert render("{% for i in range(end=6, step=2) %}{{ i }}{% endfor %}") == "024"


def test_stringify_and_get_attribute():
    assert stringify(None) == ""
    assert stringify(True) == "true"
    assert stringify(1.5) == "1.5"
    assert get_attribute({"a": 1}, "a", "x.a") == 1
    assert isinstance(get_attribute({"a": 1}, "b", "x.b"), Undefined)
    assert isinstance(get_attribute([1], 3, "x[3]"), Undefined)
    assert isinstance(get_attribute(object(), "_private", "x._private"), Undefined)


def test_default_filter_function():
    assert do_default(Undefined("x"), "d") == "d"
    assert do_default(0, "d") == 0
    assert do_default(0, "d", boolean=True) == "d"


def test_safe_and_escape_filters():
    context = {"html": "<em>x</em>", "safe_html": Markup("<em>y</em>")}
    assert render("{{ html }}", context) == "&lt;em&gt;x&lt;/em&gt;"
    assert render("{{ html | safe }}", context) == "<em>x</em>"
    assert render("{{ safe_html }}", context) == "<em>y</em>"
    assert render("{{ html | escape }}", context, name="note.txt") == "&lt;em&gt;x&lt;/em&gt;"
    assert render("{{ html }}", context, name="note.txt") == "<em>x</em>"
