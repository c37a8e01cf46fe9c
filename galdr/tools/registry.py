"""Registry through which API-backed providers execute model-requested tools."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from galdr.utils.logging import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[..., Union[str, Awaitable[str]]]


class ToolDefinition(BaseModel):
    """A function tool as advertised to the model"""

    name: str
    description: str
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    display_name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """Maps tool names to handlers. Handler failures are reported as strings, never raised."""

    def __init__(self):
        self._tools: Dict[str, Tuple[ToolDefinition, ToolHandler]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        self._tools[definition.name] = (definition, handler)
        logger.debug(f"Registered tool: {definition.name}")

    def tool(
        self,
        name: str,
        description: str,
        parameters: Optional[Dict[str, Any]] = None,
        display_name: Optional[str] = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of ``register``"""

        def decorator(handler: ToolHandler) -> ToolHandler:
            definition = ToolDefinition(name=name, description=description, display_name=display_name)
            if parameters is not None:
                definition.parameters = parameters
            self.register(definition, handler)
            return handler

        return decorator

    def definitions(self) -> List[Dict[str, Any]]:
        return [definition.to_openai() for definition, _ in self._tools.values()]

    async def execute_tool(
        self,
        name: str,
        args: Dict[str, Any],
        sink=None,
        should_display: Optional[Callable[[str], bool]] = None,
    ) -> str:
        """Run a tool and return its output for the model.

        When a sink is given the invocation is shown on it, unless ``should_display``
        hides the tool's display name.
        """
        entry = self._tools.get(name)
        if entry is None:
            return f"Error executing {name}: unknown tool"
        definition, handler = entry

        displayed = sink is not None and (should_display is None or should_display(definition.label))
        if displayed:
            sink.show_tool(definition.label, args)

        try:
            result = handler(**args)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            if displayed:
                sink.complete_tool(False)
            raise
        except Exception as e:  # reported back to the model as text
            logger.warning(f"Tool {name} failed: {e}")
            if displayed:
                sink.complete_tool(False)
            return f"Error executing {name}: {e}"

        if displayed:
            sink.complete_tool(True)
        return "" if result is None else str(result)
