import pytest

from stencil.environment import Environment
from stencil.errors import TemplateError, TemplateNotFound, UndefinedVariableError
from stencil.loaders import DictLoader


def make_env(templates, **kwargs):
    return Environment(DictLoader(templates), **kwargs)


def test_for_loop_variable_and_separator():
    env = make_env(
        {
            "list.html": (
                "{% for item in items %}{{ loop.index }}:{{ item }}"
                "{% if not loop.last %} | {% endif %}{% endfor %}"
            )
        }
    )
    assert env.render("list.html", {"items": ["a", "b", "c"]}) == "1:a | 2:b | 3:c"
    assert env.render("list.html", {"items": ["a"]}) == "1:a"


def test_for_loop_else_and_mapping_items():
    env = make_env(
        {
            "empty.html": "{% for x in items %}{{ x }}{% else %}nothing{% endfor %}",
            "pairs.html": "{% for k, v in data %}{{ k }}={{ v }};{% endfor %}",
        }
    )
    assert env.render("empty.html", {"items": []}) == "nothing"
    assert env.render("pairs.html", {"data": {"a": 1, "b": 2}}) == "a=1;b=2;"


def test_loop_variables_do_not_leak():
    env = make_env({"t.html": "{% for x in [1, 2] %}{% set y = x %}{% endfor %}{{ x is defined }}{{ y is defined }}"})
    assert env.render("t.html") == "falsefalse"


def test_set_assigns_for_rest_of_template():
    env = make_env({"t.html": "{% set greeting = 'hi ' ~ name %}{{ greeting }}!"})
    assert env.render("t.html", {"name": "Ann"}) == "hi Ann!"


def test_render_does_not_modify_context():
    env = make_env({"t.html": "{% set config = 1 %}{{ config }}"})
    context = {"config": {"title": "x"}}
    assert env.render("t.html", context) == "1"
    assert context == {"config": {"title": "x"}}


def test_include_renders_with_current_variables():
    env = make_env(
        {
            "page.html": '{% for name in names %}{% include "part.html" %}{% endfor %}',
            "part.html": "[{{ name }}]",
        }
    )
    assert env.render("page.html", {"names": ["a", "b"]}) == "[a][b]"


def test_missing_include_reports_include_site():
    env = make_env({"page.html": 'a\n{% include "nope.html" %}'})
    with pytest.raises(TemplateNotFound) as exc_info:
        env.render("page.html")
    assert exc_info.value.template == "nope.html"
    assert exc_info.value.name == "page.html"
    assert exc_info.value.lineno == 2


def test_missing_include_can_be_ignored():
    env = make_env({"page.html": 'a{% include "nope.html" ignore missing %}c'})
    assert env.render("page.html") == "ac"


def test_macros_from_imported_template():
    env = make_env(
        {
            "macros.html": (
                '{% macro hi(name, greeting="Hello") %}{{ greeting }}, {{ name }}!{% endmacro hi %}'
            ),
            "page.html": (
                '{% import "macros.html" as m %}'
                '{{ m::hi(name="Ann") }}|{{ m.hi("Bo", greeting="Hi") }}'
            ),
        }
    )
    assert env.render("page.html") == "Hello, Ann!|Hi, Bo!"


def test_macro_sees_global_context_and_escapes_arguments():
    env = make_env(
        {
            "macros.html": "{% macro card(post) %}<b>{{ post.title }}</b> {{ config.title }}{% endmacro %}",
            "page.html": (
                '{% import "macros.html" as macros %}'
                "{% for post in posts %}{{ macros::card(post=post) }}{% endfor %}"
            ),
        }
    )
    context = {"config": {"title": "Site"}, "posts": [{"title": "A&B"}, {"title": "C"}]}
    assert env.render("page.html", context) == "<b>A&amp;B</b> Site<b>C</b> Site"


def test_macro_argument_errors():
    env = make_env(
        {
            "macros.html": "{% macro m(a, b=2) %}{{ a }}{{ b }}{% endmacro %}",
            "missing.html": '{% import "macros.html" as x %}{{ x::m() }}',
            "extra.html": '{% import "macros.html" as x %}{{ x::m(1, c=3) }}',
            "unknown.html": '{% import "macros.html" as x %}{{ x::nope() }}',
            "ok.html": '{% import "macros.html" as x %}{{ x::m(1) }}',
        }
    )
    assert env.render("ok.html") == "12"
    for name in ("missing.html", "extra.html", "unknown.html"):
        with pytest.raises(TemplateError):
            env.render(name)


def test_recursive_macro_and_include_fail_cleanly():
    env = make_env(
        {
            "macro.html": "{% macro m() %}{{ self::m() }}{% endmacro %}{{ self::m() }}",
            "loop.html": 'x{% include "loop.html" %}',
            "tree.html": (
                "{% macro down(n) %}{{ n }}{% if n > 0 %}{{ self::down(n=n - 1) }}{% endif %}"
                "{% endmacro %}{{ self::down(n=3) }}"
            ),
        }
    )
    assert env.render("tree.html") == "3210"
    with pytest.raises(TemplateError, match="Too deeply nested macro 'm'") as exc_info:
        env.render("macro.html")
    assert exc_info.value.name == "macro.html"
    with pytest.raises(TemplateError, match="Too deeply nested include of 'loop.html'"):
        env.render("loop.html")


def test_error_in_inherited_block_points_at_declaring_template():
    env = make_env(
        {
            "base.html": "<html>\n{% block head %}\n{{ oops }}\n{% endblock %}\n{% block body %}{% endblock %}",
            "page.html": '{% extends "base.html" %}\n{% block body %}\n\n{{ page.title }}{% endblock %}',
        }
    )
    with pytest.raises(UndefinedVariableError) as exc_info:
        env.render("page.html", {"page": {"title": "t"}})
    assert exc_info.value.name == "base.html"
    assert exc_info.value.lineno == 3


def test_error_in_overriding_block_points_at_child():
    env = make_env(
        {
            "base.html": "{% block body %}{% endblock %}",
            "page.html": '{% extends "base.html" %}\n{% block body %}\n\n{{ page.nope }}{% endblock %}',
        }
    )
    with pytest.raises(UndefinedVariableError) as exc_info:
        env.render("page.html", {"page": {}})
    assert exc_info.value.name == "page.html"
    assert exc_info.value.lineno == 4


def test_rendering_is_deterministic():
    env = make_env(
        {
            "base.html": "{% block a %}{% for k, v in d %}{{ k }}{{ v }}{% endfor %}{% endblock %}",
            "page.html": '{% extends "base.html" %}{% block a %}[{{ super() }}]{% endblock %}',
        }
    )
    context = {"d": {"x": 1, "y": "<"}}
    assert env.render("page.html", context) == env.render("page.html", context) == "[x1y&lt;]"


def test_autoescape_can_be_disabled():
    env = make_env({"t.html": "{{ v }}"}, autoescape=False)
    assert env.render("t.html", {"v": "<p>"}) == "<p>"
