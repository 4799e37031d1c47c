"""Tool definitions and the name-indexed registry consumed by the dispatch node."""

import asyncio
import inspect
import json
import logging
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel, Field, ValidationError, create_model

from threadgraph.errors import ToolInvocationError

logger = logging.getLogger(__name__)


class ToolSpec(BaseModel):
    """Declaration of a tool as shown to the model: no invocation capability."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class ToolDefinition:
    """A named tool with an argument schema and a handler.

    The handler may be a plain function or a coroutine function. Plain
    functions are run in a worker thread so they never block the event loop.
    When ``args_model`` is given, arguments are validated against it before
    the handler is called and the schema shown to the model is derived from it.
    """

    def __init__(
        self,
        name: str,
        handler: Callable[..., Any],
        description: str = "",
        parameters: dict[str, Any] | None = None,
        args_model: type[BaseModel] | None = None,
    ) -> None:
        self.name = name
        self.handler = handler
        self.description = description
        self.args_model = args_model
        if parameters is None:
            if args_model is not None:
                parameters = args_model.model_json_schema()
            else:
                parameters = {"type": "object", "properties": {}}
        self.parameters = parameters

    def __repr__(self) -> str:
        return f"ToolDefinition(name={self.name!r})"

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def _validate(self, args: dict[str, Any]) -> dict[str, Any]:
        if self.args_model is None:
            return dict(args)
        try:
            validated = self.args_model.model_validate(args)
        except ValidationError as exc:
            raise ToolInvocationError(
                f"Invalid arguments for tool {self.name!r}: {exc}",
                tool_name=self.name,
            ) from exc
        return {field: getattr(validated, field) for field in type(validated).model_fields}

    async def invoke(self, args: dict[str, Any]) -> str:
        """Validate ``args``, run the handler and return its result as text.

        Raises:
            ToolInvocationError: If validation or the handler fails.
        """
        kwargs = self._validate(args)
        try:
            if inspect.iscoroutinefunction(self.handler):
                result = await self.handler(**kwargs)
            else:
                result = await asyncio.to_thread(self.handler, **kwargs)
        except ToolInvocationError:
            raise
        except Exception as exc:
            raise ToolInvocationError(
                f"Tool {self.name!r} failed: {exc}",
                tool_name=self.name,
            ) from exc
        return _stringify(result)


def _stringify(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, default=str)


def tool(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Any:
    """Build a ToolDefinition from a function signature.

    Usage:
        ```python
        @tool
        async def get_mark_price(coin: str) -> str:
            \"\"\"Get the current mark price of a perpetual.\"\"\"
            ...
        ```
    """

    def wrap(fn: Callable[..., Any]) -> ToolDefinition:
        fields: dict[str, Any] = {}
        for param in inspect.signature(fn).parameters.values():
            annotation = (
                Any if param.annotation is inspect.Parameter.empty else param.annotation
            )
            default = ... if param.default is inspect.Parameter.empty else param.default
            fields[param.name] = (annotation, default)
        tool_name = name or fn.__name__
        args_model = create_model(f"{tool_name}_args", **fields)
        doc = inspect.getdoc(fn) or ""
        return ToolDefinition(
            name=tool_name,
            handler=fn,
            description=description or doc.split("\n\n")[0].strip(),
            args_model=args_model,
        )

    if func is not None:
        return wrap(func)
    return wrap


class ToolRegistry:
    """Lookup from tool name to definition, built once at construction."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for definition in tools:
            self.register(definition)

    def register(self, definition: ToolDefinition) -> None:
        """Register a tool. Names must be unique."""
        if definition.name in self._tools:
            raise ValueError(f"Tool {definition.name!r} is already registered")
        self._tools[definition.name] = definition
        logger.debug("registered tool name=%s", definition.name)

    def lookup(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def catalog(self) -> list[ToolSpec]:
        """Declarations of every registered tool, in registration order."""
        return [definition.spec for definition in self._tools.values()]

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
