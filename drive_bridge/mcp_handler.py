"""MCP tool registry: descriptors, aliases and invocation."""
from typing import Any, Awaitable, Callable, Dict, List, Literal, Sequence, Union
import logging
from pydantic import BaseModel, ConfigDict, Field

from .utils.errors import UnknownToolError

logger = logging.getLogger(__name__)


class ToolAnnotations(BaseModel):
    model_config = ConfigDict(frozen=True)

    readOnlyHint: bool = True
    openWorldHint: bool = True


class ToolDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    inputSchema: Dict[str, Any]
    annotations: ToolAnnotations = ToolAnnotations()


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class JsonContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["json"] = "json"
    # "json" would shadow BaseModel.json
    json_: Any = Field(default=None, alias="json")


ContentBlock = Union[TextContent, JsonContent]


def dump_content(blocks: Sequence[ContentBlock]) -> List[Dict[str, Any]]:
    """Serialize content blocks with their wire field names."""
    return [block.model_dump(by_alias=True) for block in blocks]


ToolHandler = Callable[[Dict[str, Any]], Awaitable[List[ContentBlock]]]


class MCPHandler:
    def __init__(self):
        self.tools: Dict[str, ToolHandler] = {}
        self.tool_schemas: Dict[str, ToolDescriptor] = {}
        self.aliases: Dict[str, str] = {}

    def register_tool(
        self,
        name: str,
        description: str,
        input_schema: Dict[str, Any],
        handler: ToolHandler,
        aliases: Sequence[str] = (),
        read_only: bool = True,
        open_world: bool = True,
    ) -> None:
        """Register an MCP tool under its canonical name and any aliases."""
        self.tools[name] = handler
        self.tool_schemas[name] = ToolDescriptor(
            name=name,
            description=description,
            inputSchema=input_schema,
            annotations=ToolAnnotations(readOnlyHint=read_only, openWorldHint=open_world),
        )
        for alias in aliases:
            self.aliases[alias] = name
        logger.info(f"Registered tool: {name}" + (f" (aliases: {', '.join(aliases)})" if aliases else ""))

    def resolve(self, tool_name: str) -> str:
        """Return the canonical name for a canonical or alias tool name."""
        if tool_name in self.tools:
            return tool_name
        if tool_name in self.aliases:
            return self.aliases[tool_name]
        raise UnknownToolError(f"Unknown tool: {tool_name}")

    def list_tools(self) -> List[Dict[str, Any]]:
        """List canonical tools in registration order."""
        return [schema.model_dump() for schema in self.tool_schemas.values()]

    async def execute_tool(self, tool_name: str, arguments: Dict[str, Any]) -> List[ContentBlock]:
        """Execute a registered tool by canonical or alias name."""
        handler = self.tools[self.resolve(tool_name)]
        return await handler(arguments or {})
