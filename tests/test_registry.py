"""Tests for ToolRegistry and the session composition root."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from code_scout.config import ScoutConfig, ToolLimits
from code_scout.core.cancellation import CancellationToken
from code_scout.core.tool_result import ToolResult
from code_scout.tools.base import ToolDescriptor, ToolParameter
from code_scout.tools.read_file import ReadFileTool
from code_scout.tools.registry import ToolRegistry, build_registry
from conftest import assert_fail, assert_ok, make_file


class TestBuildRegistry:
    def test_registers_only_read_tools(self, config):
        registry = build_registry(config)
        assert sorted(registry.names()) == ["glob", "grep", "list_directory", "read_file"]

    def test_function_schemas(self, config):
        schemas = build_registry(config).function_schemas()
        assert len(schemas) == 4
        for schema in schemas:
            assert schema["type"] == "function"
            fn = schema["function"]
            assert fn["parameters"]["type"] == "object"
            assert "Example" in fn["description"]

    def test_read_file_schema_shape(self, config):
        schema = next(s for s in build_registry(config).function_schemas() if s["function"]["name"] == "read_file")
        params = schema["function"]["parameters"]
        assert params["required"] == ["file_path"]
        assert params["properties"]["encoding"]["enum"] == ["utf-8", "ascii", "base64"]

    def test_limits_applied(self, workspace):
        for i in range(5):
            make_file(workspace, f"f{i}.txt")
        config = ScoutConfig(model="m", workspace_root=workspace, limits=ToolLimits(max_glob_results=2))
        result = build_registry(config).execute("glob", {"pattern": "*.txt"})
        assert result.truncated is True
        assert len(result.data["matches"]) == 2

    def test_deny_tools_applied(self, workspace):
        config = ScoutConfig(model="m", workspace_root=workspace, deny_tools=["grep"])
        assert_fail(build_registry(config).execute("grep", {"pattern": "x"}), "DENIED_BY_POLICY")


class TestExecute:
    def test_dispatches_by_name(self, config, workspace):
        make_file(workspace, "a.txt", "hi\n")
        result = build_registry(config).execute("read_file", {"file_path": "a.txt"})
        assert_ok(result)
        assert "hi" in result.output

    def test_unknown_tool(self, config):
        result = build_registry(config).execute("write_file", {"path": "x"})
        assert_fail(result, "UNKNOWN_TOOL")
        assert "read_file" in result.error

    def test_cancelled_token_skips_tool(self, config):
        token = CancellationToken()
        token.cancel()
        assert_fail(build_registry(config).execute("glob", {"pattern": "*"}, token), "CANCELLED")

    def test_propagates_token(self):
        tool = MagicMock()
        tool.name = "probe"
        tool.run.return_value = ToolResult.success("ok")
        registry = ToolRegistry()
        registry.register(tool)
        token = CancellationToken()
        registry.execute("probe", {"a": 1}, token)
        tool.run.assert_called_once_with({"a": 1}, token)

    def test_unexpected_exception_becomes_failure(self):
        tool = MagicMock()
        tool.name = "boom"
        tool.run.side_effect = RuntimeError("kaput")
        registry = ToolRegistry()
        registry.register(tool)
        result = registry.execute("boom", {})
        assert_fail(result, "TOOL_EXECUTION_ERROR")
        assert "kaput" in result.error


class TestRegister:
    def test_last_registration_wins(self, workspace):
        first = ReadFileTool(workspace)
        second = ReadFileTool(workspace)
        registry = ToolRegistry()
        registry.register(first)
        registry.register(second)
        assert len(registry) == 1
        assert registry.get("read_file") is second

    def test_list_descriptors(self, workspace):
        registry = ToolRegistry()
        registry.register(ReadFileTool(workspace))
        descriptors = registry.list_descriptors()
        assert [d.name for d in descriptors] == ["read_file"]
        assert "read_file" in registry


class TestDescriptor:
    def test_array_parameter_schema(self):
        descriptor = ToolDescriptor(
            "t", "desc",
            (ToolParameter("tags", "array", "tags", items_type="string"),
             ToolParameter("p", "string", "path", required=True, is_path=True)),
        )
        schema = descriptor.json_schema()
        assert schema["properties"]["tags"]["items"] == {"type": "string"}
        assert descriptor.required == ["p"]
        assert descriptor.path_params == ["p"]

    def test_descriptor_is_immutable(self):
        descriptor = ToolDescriptor("t", "desc")
        with pytest.raises(AttributeError):
            descriptor.name = "other"
