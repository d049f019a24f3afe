from errors import ChatError, ErrorCode, ToolError
from session.telemetry import SessionTelemetry
from tools.handler import ChatTool, ToolContext, ToolOutput, execute_tool


def _tool(fn, name="search_skills"):
    return ChatTool(
        name=name,
        description="test tool",
        input_schema={"type": "object"},
        fn=fn,
        capabilities={"context_read"},
    )


def _context():
    return ToolContext(client=None, telemetry=SessionTelemetry())


def test_execute_tool_passes_validated_payload():
    seen = []

    def impl(payload, context):
        seen.append(payload)
        return ToolOutput(content="ok", success=True)

    context = _context()
    output = execute_tool(_tool(impl), {"query": "  deploy "}, context)

    assert output.success is True
    assert seen[0].query == "deploy"
    assert context.telemetry.snapshot()["tool_calls"] == 1
    assert context.telemetry.snapshot()["tool_errors"] == 0


def test_execute_tool_reports_validation_errors():
    context = _context()
    output = execute_tool(_tool(lambda payload, ctx: ToolOutput("unreachable", True)), {"query": 5}, context)

    assert output.success is False
    assert output.content.startswith("Invalid input for search_skills: query")
    assert context.telemetry.snapshot()["tool_errors"] == 1


def test_execute_tool_treats_non_mapping_input_as_empty():
    output = execute_tool(_tool(lambda payload, ctx: ToolOutput("x", True)), "garbage", _context())
    assert output.success is False
    assert "query" in output.content


def test_execute_tool_converts_tool_and_chat_errors():
    def raises_tool_error(payload, context):
        raise ToolError("nothing to list")

    def raises_chat_error(payload, context):
        raise ChatError("upstream down", ErrorCode.NETWORK_ERROR)

    assert execute_tool(_tool(raises_tool_error), {"query": "q"}, _context()).content == "nothing to list"
    failed = execute_tool(_tool(raises_chat_error), {"query": "q"}, _context())
    assert failed.success is False
    assert failed.content == "search_skills failed: upstream down"


def test_unknown_tool_names_get_raw_payload():
    seen = []

    def impl(payload, context):
        seen.append(payload)
        return ToolOutput("ok", True)

    execute_tool(_tool(impl, name="echo"), {"anything": 1}, _context())
    assert seen == [{"anything": 1}]


def test_to_definition_and_log_preview():
    tool = _tool(lambda payload, ctx: ToolOutput("", True))
    assert tool.to_definition() == {"name": "search_skills", "description": "test tool", "input_schema": {"type": "object"}}

    long_output = ToolOutput(content="\n".join(str(i) for i in range(200)), success=True)
    preview = long_output.log_preview(max_lines=3)
    assert preview.startswith("0\n1\n2")
    assert preview.endswith("[... truncated ...]")
