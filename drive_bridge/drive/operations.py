"""Search and fetch tool handlers backed by the Drive client."""
from typing import Any, Dict, List

from .client import DriveClient
from ..mcp_handler import ContentBlock, JsonContent, TextContent
from ..utils.validation import validate_file_id, validate_line_range, validate_search_limit


def is_inline_text(payload: Any) -> bool:
    """True when the backend returned literal file text flagged for inlining."""
    return (
        isinstance(payload, dict)
        and bool(payload.get("inline"))
        and isinstance(payload.get("text"), str)
    )


class DriveOperations:
    def __init__(self, drive_client: DriveClient):
        self.drive_client = drive_client

    async def search(self, arguments: Dict[str, Any]) -> List[ContentBlock]:
        """Search Drive files; one json block wrapping the result list."""
        query = arguments.get("q")
        query = "" if query is None else str(query)
        max_results = validate_search_limit(arguments.get("max"))

        results = await self.drive_client.search(query, max_results)

        return [JsonContent(json=results)]

    async def fetch(self, arguments: Dict[str, Any]) -> List[ContentBlock]:
        """Fetch a file by id.

        Inline text payloads become a single text block, anything else is
        returned as a json block.
        """
        file_id = validate_file_id(arguments.get("id"))
        lines = validate_line_range(arguments.get("lines"))

        payload = await self.drive_client.fetch(file_id, lines)

        if is_inline_text(payload):
            return [TextContent(text=payload["text"])]
        return [JsonContent(json=payload)]
