import pytest

from deploygraph.exceptions import (
    InvalidReferenceError,
    NonStringInterpolationError,
    UnresolvableTemplateError,
)
from deploygraph.references import (
    find_references,
    resolve_references,
    resolve_template,
)


def test_whole_expression_preserves_type():
    context = {"a": {"port": 8080, "tags": ["x", "y"], "meta": {"k": "v"}}}

    resolved = resolve_references(
        {"port": "${a.port}", "tags": "${a.tags}", "meta": "${a.meta}", "all": "${a}"},
        context,
    )

    assert resolved == {
        "port": 8080,
        "tags": ["x", "y"],
        "meta": {"k": "v"},
        "all": context["a"],
    }
    assert isinstance(resolved["port"], int)


def test_embedded_expressions_are_spliced():
    context = {"a": {"host": "example.com", "scheme": "https"}}

    resolved = resolve_references(
        ["${a.scheme}://${a.host}/${a.host}", {"nested": ("x-${a.host}",)}], context
    )

    assert resolved == [
        "https://example.com/example.com",
        {"nested": ("x-example.com",)},
    ]


def test_embedded_non_string_is_rejected():
    with pytest.raises(NonStringInterpolationError, match=r"\$\{a.port\}"):
        resolve_references("port-${a.port}", {"a": {"port": 8080}})


def test_missing_path_is_rejected():
    with pytest.raises(InvalidReferenceError) as exc_info:
        resolve_references({"x": "${a.missing}"}, {"a": {}})

    assert exc_info.value.expression == "${a.missing}"

    with pytest.raises(InvalidReferenceError):
        resolve_references("${b}", {"a": {}})


def test_list_indexes_and_falsy_values():
    context = {"a": {"items": ["zero", "one"], "off": False, "none": None}}

    assert resolve_references("${a.items.1}", context) == "one"
    assert resolve_references("${a.off}", context) is False
    assert resolve_references("${a.none}", context) is None

    with pytest.raises(InvalidReferenceError):
        resolve_references("${a.items.2}", context)


def test_non_string_values_are_untouched():
    value = {"n": 1, "f": 1.5, "b": True, "none": None, "plain": "no refs"}

    assert resolve_references(value, {}) == value


def test_env_references(monkeypatch):
    monkeypatch.setenv("DEPLOYGRAPH_TEST_STAGE", "prod")
    monkeypatch.delenv("DEPLOYGRAPH_TEST_UNSET", raising=False)

    assert resolve_references("${env.DEPLOYGRAPH_TEST_STAGE}", {}) == "prod"
    assert resolve_references("app-${env.DEPLOYGRAPH_TEST_STAGE}", {}) == "app-prod"
    # unset variables resolve to an empty string
    assert resolve_references("${env.DEPLOYGRAPH_TEST_UNSET}", {}) == ""
    assert resolve_references("app-${env.DEPLOYGRAPH_TEST_UNSET}", {}) == "app-"


def test_find_references():
    value = {"a": "${x.y} and ${env.HOME}", "b": ["${z}", 3], "c": "$notref {x}"}

    assert sorted(find_references(value)) == ["env.HOME", "x.y", "z"]


def test_static_resolution_defers_component_references():
    template = {
        "a": {"x": 1},
        "b": {"component": "X", "inputs": {"y": "${a.x}", "z": "${c.out}"}},
        "c": {"component": "X"},
    }

    resolved = resolve_template(template)

    assert resolved["b"]["inputs"] == {"y": 1, "z": "${c.out}"}
    assert isinstance(resolved["b"]["inputs"]["y"], int)


def test_static_resolution_splices_around_deferred_references():
    template = {
        "name": "site",
        "b": {"component": "X", "inputs": {"url": "${name}.${c.domain}"}},
        "c": {"component": "X"},
    }

    assert resolve_template(template)["b"]["inputs"]["url"] == "site.${c.domain}"


def test_static_resolution_reaches_fixpoint():
    template = {
        "region": "us-east-1",
        "stage": "${region}-prod",
        "name": "app-${stage}",
        "svc": {"component": "X", "inputs": {"name": "${name}"}},
    }

    resolved = resolve_template(template)

    assert resolved["name"] == "app-us-east-1-prod"
    assert resolved["svc"]["inputs"]["name"] == "app-us-east-1-prod"

    # idempotent at fixpoint
    assert resolve_template(resolved) == resolved


def test_static_resolution_rejects_undeclared_keys():
    with pytest.raises(InvalidReferenceError, match=r"\$\{nope.x\}"):
        resolve_template({"svc": {"component": "X", "inputs": {"v": "${nope.x}"}}})


@pytest.mark.parametrize(
    "template",
    (
        {"a": "${a}"},
        {"a": "${b}", "b": "${a}"},
        {"a": "x${b}", "b": "${a}"},
    ),
    ids=("self", "mutual", "growing"),
)
def test_static_resolution_rejects_cycles(template):
    with pytest.raises(UnresolvableTemplateError):
        resolve_template(template, max_passes=5)
