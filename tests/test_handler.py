"""Property-based tests for the StepHandler base class."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from chainbridge.core.engine import Engine
from chainbridge.core.handler import StepHandler

# Strategy for generating valid class names (Python identifier style)
valid_class_names = st.from_regex(r"[A-Z][A-Za-z0-9_]{0,30}", fullmatch=True)


def create_handler_class(class_name: str, listens_to=None) -> type[StepHandler]:
    """Dynamically create a StepHandler subclass with the given name."""

    def handle(self, payload, next):
        next(payload)

    return type(
        class_name,
        (StepHandler,),
        {"listens_to": ["test.event"] if listens_to is None else listens_to, "handle": handle},
    )


@given(class_name=valid_class_names)
@settings(max_examples=100)
def test_handler_name_defaults_to_class_name(class_name: str):
    handler = create_handler_class(class_name)()

    assert handler.name == class_name


@given(
    class_name=valid_class_names,
    explicit_name=st.text(min_size=1, max_size=50).filter(lambda s: s.strip()),
)
def test_explicit_name_overrides_default(class_name: str, explicit_name: str):
    handler = create_handler_class(class_name)(name=explicit_name)

    assert handler.name == explicit_name


def test_handler_is_callable_like_a_function():
    handler = create_handler_class("Echo")()
    results = []

    handler({"x": 1}, results.append)

    assert results == [{"x": 1}]


class TestRegisterHandler:
    @pytest.mark.parametrize("invalid_value", [123, 45.6, True, None, [1, 2], {"a": 1}])
    def test_rejects_non_string_in_listens_to(self, invalid_value):
        handler = create_handler_class("Bad", ["valid.event", invalid_value])()

        with pytest.raises(TypeError) as exc_info:
            Engine().register_handler(handler)

        assert "listens_to" in str(exc_info.value)

    @pytest.mark.parametrize("invalid_listens_to", ["not_a_list", 123, None, {"key": "value"}])
    def test_rejects_non_list_listens_to(self, invalid_listens_to):
        handler = create_handler_class("Bad", invalid_listens_to)()

        with pytest.raises(TypeError) as exc_info:
            Engine().register_handler(handler)

        assert "listens_to" in str(exc_info.value)

    def test_registers_for_every_listened_event(self):
        engine = Engine()
        handler = create_handler_class("Multi", ["a.one", "a.two"])()

        engine.register_handler(handler)

        assert engine.has_handlers("a.one")
        assert engine.has_handlers("a.two")

    def test_unregister_removes_all_events(self):
        engine = Engine()
        handler = create_handler_class("Multi", ["a.one", "a.two"])()

        unregister = engine.register_handler(handler)
        unregister()

        assert not engine.has_handlers("a.one")
        assert not engine.has_handlers("a.two")
