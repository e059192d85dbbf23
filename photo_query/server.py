"""Thin MCP server for photo-query.

Delegates all work to the photo-query service daemon via HTTP.
No torch, numpy, or PIL imports in this process.
"""

import logging

from mcp.server.fastmcp import FastMCP

from client import ServiceClient

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

mcp = FastMCP("photo-query")
client = ServiceClient()


@mcp.tool()
def search(query: str, limit: int = 0) -> str:
    """Search the photo library with a natural language query.

    Understands places ("from Paris", "at the beach"), ownership ("my photos",
    "videos of me"), named people ("with Sarah"), media type, counts
    ("10 photos") and relative time ("last summer", "3 days ago"). Results
    are newest first.

    Args:
        query: Free-text query, e.g. "my photos from Miraggio last summer".
        limit: Maximum number of results. 0 uses the count in the query or 50.
    """
    return client.search(query, limit or None)


def _index_lines(name: str, data: dict, counts: list[tuple[str, str]]) -> list[str]:
    lines = [f"{name}:"]
    lines += [f"  {label}: {data[key]}" for label, key in counts]
    progress = data.get("progress")
    if data.get("building") and progress:
        lines.append(f"  building: {progress['current']}/{progress['total']}")
    elif data.get("last_build"):
        lines.append(f"  last build: {data['last_build']['summary']}")
    return lines


@mcp.tool()
def index_status() -> str:
    """Report the state of the geo and label indexes, including build progress."""
    s = client.status()
    if s.get("loading"):
        return "Service is loading, try again shortly."
    lines = [
        f"Photos library: {s['library']}",
        f"Items: {s['catalog_size']} ({s['videos']} videos)",
        *_index_lines(
            "Geo index",
            s["geo"],
            [("indexed", "photos_indexed"), ("with location", "photos_with_location"),
             ("geohash cells", "unique_geohashes")],
        ),
        *_index_lines(
            "Label index",
            s["labels"],
            [("indexed", "photos_indexed"), ("labeled", "photos_labeled"),
             ("labels", "unique_labels")],
        ),
    ]
    return "\n".join(lines)


@mcp.tool()
def build_indexes(index: str = "all", limit: int = 0) -> str:
    """Start building the search indexes in the background.

    The geo index is fast (coordinates only). The label index runs a vision
    classifier on every photo on disk and resumes where it left off.
    Check progress with index_status.

    Args:
        index: "geo", "labels" or "all".
        limit: Classify at most this many photos (label index only). 0 means no limit.
    """
    targets = ["geo", "labels"] if index == "all" else [index]
    parts = []
    for name in targets:
        data = client.build(name, limit or None)
        if data.get("busy"):
            parts.append(f"{name}: already running")
        elif data.get("error"):
            parts.append(f"{name}: {data['error']}")
        elif data.get("loading"):
            parts.append(f"{name}: service is loading, try again shortly")
        else:
            parts.append(f"{name}: started ({data.get('total', 0)} items)")
    return "\n".join(parts)


@mcp.tool()
def cancel_indexing(index: str = "all") -> str:
    """Stop a running index build. Work done so far is kept.

    Args:
        index: "geo", "labels" or "all".
    """
    cancelled = client.cancel(index)
    if not cancelled:
        return "No build is running."
    return f"Cancelling: {', '.join(cancelled)}"


@mcp.tool()
def clear_indexes(index: str = "all") -> str:
    """Delete index contents so they can be rebuilt from scratch.

    Args:
        index: "geo", "labels" or "all".
    """
    return client.clear(index)


@mcp.tool()
def top_locations(limit: int = 20) -> str:
    """List the places with the most photos, busiest first.

    Args:
        limit: Number of places to return (default 20).
    """
    places = client.locations(limit)
    if not places:
        return "No located photos indexed. Run build_indexes first."
    return "\n".join(
        f"{p['count']:>6}  {p['place'] or p['geohash']}  ({p['latitude']}, {p['longitude']})"
        for p in places
    )


if __name__ == "__main__":
    mcp.run(transport="stdio")
