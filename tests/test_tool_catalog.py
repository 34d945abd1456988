"""Tests for modelgate.tools.catalog."""

from __future__ import annotations

import pytest

from modelgate.errors import ConfigurationError
from modelgate.llm.types import ConversationContext
from modelgate.tools.catalog import (
    ToolCatalog,
    ToolSpec,
    normalize_parameters,
    split_qualified_name,
)


def make_catalog() -> ToolCatalog:
    catalog = ToolCatalog()
    catalog.register("fs", [
        ToolSpec(
            "read",
            "Read a file",
            {"path": {"type": "string", "description": "File path"}},
            ("path",),
        ),
        ToolSpec("list", "List files"),
    ])
    catalog.register("time", [ToolSpec("now", "Current time")])
    return catalog


class TestNormalizeParameters:
    """Required names always exist in properties."""

    def test_missing_required_property_is_synthesized(self):
        params = normalize_parameters(ToolSpec("t", required=("x",)))
        assert params["properties"] == {
            "x": {"type": "string", "description": "Parameter x"}
        }
        assert params["required"] == ["x"]

    def test_existing_properties_are_kept(self):
        spec = ToolSpec("t", properties={"x": {"type": "integer"}}, required=("x",))
        params = normalize_parameters(spec)
        assert params["properties"]["x"] == {"type": "integer"}

    def test_required_omitted_when_empty(self):
        params = normalize_parameters(ToolSpec("t"))
        assert "required" not in params
        assert params["properties"] == {}

    def test_dummy_property_when_vendor_requires_one(self):
        params = normalize_parameters(ToolSpec("t"), require_properties=True)
        assert list(params["properties"]) == ["dummy"]

    def test_does_not_mutate_spec(self):
        spec = ToolSpec("t", required=("x",))
        normalize_parameters(spec)
        assert spec.properties == {}


class TestCatalog:
    def test_qualified_names_in_registration_order(self):
        names = [name for name, _ in make_catalog().iter_tools()]
        assert names == ["fs__read", "fs__list", "time__now"]

    def test_context_filters_tools(self):
        ctx = ConversationContext("completion", frozenset({"fs__read"}))
        names = [name for name, _ in make_catalog().iter_tools(ctx)]
        assert names == ["fs__read"]

    def test_split_qualified_name(self):
        assert split_qualified_name("fs__read") == ("fs", "read")
        assert split_qualified_name("plain") == ("", "plain")

    def test_source_name_cannot_contain_separator(self):
        with pytest.raises(ValueError):
            ToolCatalog().register("a__b", [])

    def test_check_accepts_valid_catalog(self):
        make_catalog().check()

    def test_check_rejects_bad_property_schema(self):
        catalog = ToolCatalog()
        catalog.register("bad", [ToolSpec("t", properties={"x": {"type": 42}})])
        with pytest.raises(ConfigurationError, match="bad__t"):
            catalog.check()

    def test_check_rejects_non_string_required(self):
        catalog = ToolCatalog()
        catalog.register("bad", [ToolSpec("t", required=(1,))])
        with pytest.raises(ConfigurationError):
            catalog.check()


class TestVendorShapes:
    def test_openai_functions(self):
        functions = make_catalog().openai_functions()
        assert functions[0] == {
            "name": "fs__read",
            "description": "Read a file",
            "parameters": {
                "type": "object",
                "properties": {"path": {"type": "string", "description": "File path"}},
                "required": ["path"],
            },
        }

    def test_responses_tools_are_flat(self):
        tool = make_catalog().responses_tools()[0]
        assert tool["type"] == "function"
        assert tool["name"] == "fs__read"
        assert "function" not in tool

    def test_anthropic_uses_input_schema(self):
        tool = make_catalog().anthropic_tools()[0]
        assert set(tool) == {"name", "description", "input_schema"}

    def test_chat_tools_wrap_function(self):
        tool = make_catalog().chat_tools()[2]
        assert tool["type"] == "function"
        assert tool["function"]["name"] == "time__now"

    def test_gemini_declarations_never_have_empty_properties(self):
        declarations = make_catalog().gemini_declarations()
        for decl in declarations:
            assert decl["parameters"]["type"] == "OBJECT"
            assert decl["parameters"]["properties"]
