"""
Simple tool registry for automatic schema generation and tool execution.

Maps plugin callables to OpenAI function schemas, validates model-supplied
arguments against those schemas and dispatches the call.
"""

import inspect
import json
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, get_type_hints

from .errors import ToolArgumentError

logger = logging.getLogger(__name__)

JSON_TYPES = {str: "string", int: "integer", float: "number", bool: "boolean"}

PYTHON_TYPES = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
}


class ToolCall(NamedTuple):
    """Container for a tool call requested by the model."""

    name: str
    arguments: Dict[str, Any]


def tool(description: Optional[str] = None, **param_descriptions: str):
    """Attach a schema description and per-parameter descriptions to a tool callable."""

    def decorator(func):
        func.tool_description = description
        func.tool_param_descriptions = param_descriptions
        return func

    return decorator


def callable_to_tool_schema(
    callable_func: Callable,
    name: str,
    description: Optional[str] = None,
    param_descriptions: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Convert a Python callable (function or method) to an OpenAI function schema.

    Args:
        callable_func: The callable to convert
        name: Tool name
        description: Optional description
        param_descriptions: Optional per-parameter descriptions

    Returns:
        Function schema dictionary
    """
    sig = inspect.signature(callable_func)
    type_hints = get_type_hints(callable_func)
    param_descriptions = param_descriptions or {}

    # Get description from docstring if not provided
    if description is None:
        doc = inspect.getdoc(callable_func)
        description = doc.strip().splitlines()[0] if doc else f"Execute {name}"

    schema = {
        "name": name,
        "description": description,
        "parameters": {"type": "object", "properties": {}, "required": []},
    }

    for param_name, param in sig.parameters.items():
        if param_name == "self":
            continue

        param_type = type_hints.get(param_name, str)
        json_type = JSON_TYPES.get(param_type, "string")

        schema["parameters"]["properties"][param_name] = {
            "type": json_type,
            "description": param_descriptions.get(param_name, f"The {param_name} parameter"),
        }

        # Add to required if no default value
        if param.default is inspect.Parameter.empty:
            schema["parameters"]["required"].append(param_name)

    return schema


def validate_arguments(schema: Dict[str, Any], arguments: Any) -> Dict[str, Any]:
    """Check ``arguments`` against a function schema and return them unchanged.

    Raises:
        ToolArgumentError: If an argument is missing, unknown or of the wrong type
    """
    name = schema["name"]
    if not isinstance(arguments, dict):
        raise ToolArgumentError(name, "arguments must be a JSON object")

    properties = schema["parameters"]["properties"]
    for required in schema["parameters"]["required"]:
        if required not in arguments:
            raise ToolArgumentError(name, f"missing required argument '{required}'")

    for arg_name, value in arguments.items():
        if arg_name not in properties:
            raise ToolArgumentError(name, f"unexpected argument '{arg_name}'")
        expected = properties[arg_name]["type"]
        allowed = PYTHON_TYPES.get(expected, (object,))
        # bool is an int subclass; only accept it where a boolean is declared
        if isinstance(value, bool) and expected != "boolean":
            raise ToolArgumentError(name, f"argument '{arg_name}' must be of type {expected}")
        if not isinstance(value, allowed):
            raise ToolArgumentError(name, f"argument '{arg_name}' must be of type {expected}")

    return arguments


class ToolRegistry:
    """Registry for managing tools and their schemas."""

    def __init__(self):
        self.tools: Dict[str, Callable] = {}  # name -> callable
        self.schemas: Dict[str, Dict[str, Any]] = {}  # name -> function schema

    def register_callable(
        self,
        callable_func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
        param_descriptions: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Register a callable and auto-generate its function schema.

        Args:
            callable_func: The callable to register
            name: Optional name override (defaults to callable name)
            description: Optional description
            param_descriptions: Optional per-parameter descriptions
        """
        tool_name = name or callable_func.__name__
        if tool_name in self.tools:
            raise ValueError(f"Tool '{tool_name}' is already registered")

        # Plugins can attach schema metadata to the callable itself
        description = description or getattr(callable_func, "tool_description", None)
        param_descriptions = param_descriptions or getattr(
            callable_func, "tool_param_descriptions", None
        )

        self.tools[tool_name] = callable_func
        self.schemas[tool_name] = callable_to_tool_schema(
            callable_func, tool_name, description, param_descriptions
        )

    def get_schemas(self) -> List[Dict[str, Any]]:
        """Get all function schemas for the OpenAI API."""
        return list(self.schemas.values())

    def parse_call(self, name: str, raw_arguments: str) -> ToolCall:
        """
        Build a validated ToolCall from a model function call.

        Raises:
            ToolArgumentError: If the tool is unknown or the arguments are invalid
        """
        if name not in self.tools:
            raise ToolArgumentError(name, "unknown tool")
        try:
            arguments = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError as e:
            raise ToolArgumentError(name, f"arguments are not valid JSON ({e})")
        return ToolCall(name=name, arguments=validate_arguments(self.schemas[name], arguments))

    async def execute_tool(self, name: str, args: Dict[str, Any]) -> Any:
        """
        Execute a registered tool by name.

        Raises:
            KeyError: If tool is not registered
        """
        if name not in self.tools:
            raise KeyError(f"Tool '{name}' not found in registry")

        callable_func = self.tools[name]

        # Execute the callable (handle both sync and async)
        if inspect.iscoroutinefunction(callable_func):
            return await callable_func(**args)
        else:
            return callable_func(**args)

    async def execute_function_call(self, name: str, raw_arguments: str) -> Dict[str, Any]:
        """
        Execute a function call streamed by the model and return its result payload.

        Argument and execution failures are returned as ``{"error": reason}``
        so they can be recorded in the conversation like any other result.
        """
        try:
            tool_call = self.parse_call(name, raw_arguments)
            result = await self.execute_tool(tool_call.name, tool_call.arguments)
        except ToolArgumentError as e:
            logger.info(f"TOOL ARGUMENT ERROR: {name} - {e.reason}")
            return {"error": str(e)}
        except Exception as e:
            logger.exception(f"TOOL ERROR: {name} - {str(e)}")
            return {"error": f"Error: {str(e)}"}

        if result is None:
            return {"error": f"{name} returned no result"}
        return result

    def __len__(self) -> int:
        """Get number of registered tools."""
        return len(self.tools)
