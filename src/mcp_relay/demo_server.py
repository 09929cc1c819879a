# demo_server.py
# A small stdio MCP tool server for trying the relay end to end.
#
#   mcp-relay --server src/mcp_relay/demo_server.py=demo
#
# Tools take plain arguments and return text. Nothing here touches the
# network or the filesystem.

from mcp.server.fastmcp import FastMCP

server = FastMCP("mcp-relay-demo")

FORECASTS = {
    "paris": "Sunny, 20C",
    "london": "Light rain, 14C",
    "tokyo": "Cloudy, 23C",
}


@server.tool()
def echo(message: str) -> str:
    """Return the message unchanged."""
    return message


@server.tool()
def summarize(text: str, limit: int = 400) -> str:
    """Trim text to at most `limit` characters."""
    text = text.strip()
    if not text:
        return "Error: no text provided."
    return text[:limit] if len(text) > limit else text


@server.tool()
def search(query: str) -> str:
    """Look up the canned weather forecast for a city mentioned in the query."""
    query = query.strip().lower()
    if not query:
        return "Error: no query provided."
    for city, forecast in FORECASTS.items():
        if city in query:
            return forecast
    return "No results found."


if __name__ == "__main__":
    server.run()
