"""Parameter template resolution tests."""

from autoflow.resolver import get_value_by_path, resolve_parameters


def test_templates_resolve_against_context():
    context = {
        "user": {"email": "ada@example.com", "tags": ["vip", "beta"]},
        "count": 3,
    }
    resolved = resolve_parameters(
        {
            "to": "{{ user.email }}",
            "first_tag": "{{user.tags.0}}",
            "count": "{{count}}",
            "subject": "Welcome",
            "retries": 2,
        },
        context,
    )
    assert resolved == {
        "to": "ada@example.com",
        "first_tag": "vip",
        "count": 3,
        "subject": "Welcome",
        "retries": 2,
    }


def test_missing_paths_resolve_to_none():
    resolved = resolve_parameters(
        {"a": "{{ user.missing.deeper }}", "b": "{{ nothing }}", "c": "{{ user.tags.9 }}"},
        {"user": {"tags": []}},
    )
    assert resolved == {"a": None, "b": None, "c": None}


def test_partial_templates_pass_through():
    resolved = resolve_parameters({"greeting": "Hello {{ name }}!"}, {"name": "Ada"})
    assert resolved == {"greeting": "Hello {{ name }}!"}


def test_empty_parameters():
    assert resolve_parameters(None, {"x": 1}) == {}
    assert resolve_parameters({}, {"x": 1}) == {}


def test_attribute_lookup():
    class Campaign:
        status = "active"

    assert get_value_by_path({"campaign": Campaign()}, "campaign.status") == "active"


def test_resolution_does_not_mutate_parameters():
    parameters = {"to": "{{ email }}"}
    resolve_parameters(parameters, {"email": "x@example.com"})
    assert parameters == {"to": "{{ email }}"}
