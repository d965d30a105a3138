"""Query parameter builder for Drive backend actions."""
from typing import Any, Dict, Optional


class QueryBuilder:
    def __init__(self, access_key: str):
        self.access_key = access_key

    def build_action(self, action: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        """Build query parameters for a backend action.

        ``None`` values are dropped, everything else is stringified.
        """
        query = {"action": action, "token": self.access_key}
        for key, value in (params or {}).items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            query[key] = str(value)
        return query

    def build_search(self, query: str, max_results: int) -> Dict[str, str]:
        """Build search action parameters."""
        return self.build_action("search", {"q": query, "max": max_results})

    def build_fetch(self, file_id: str, lines: Optional[str] = None) -> Dict[str, str]:
        """Build fetch action parameters."""
        return self.build_action("fetch", {"id": file_id, "lines": lines})

    def build_health(self) -> Dict[str, str]:
        """Build health action parameters."""
        return self.build_action("health")
