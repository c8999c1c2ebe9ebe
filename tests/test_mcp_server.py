from newsdesk.mcp_server import build_server
from newsdesk.tools import TOOL_CATALOG


async def test_server_registers_every_tool(ctx):
    server = build_server(ctx)
    tools = {tool.name: tool for tool in await server.list_tools()}
    assert set(tools) == {item["name"] for item in TOOL_CATALOG}
    search_params = tools["search_ai_news"].inputSchema["properties"]
    assert {"query", "limit", "dateRange", "category", "source", "tags"} <= set(search_params)
    assert "newsId" in tools["get_news_summary"].inputSchema["properties"]
