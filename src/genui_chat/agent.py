import json
import logging
from typing import AsyncIterator

import openai
from openai import AsyncOpenAI

from . import config
from .errors import ModelCallError
from .render import RenderState, error_display, spinner_display, text_display
from .state import AIState, ModelMessage
from .tool_registry import ToolRegistry

# Set up logging for message history
logger = logging.getLogger(__name__)


class AgentLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that automatically injects session_id into structured logs."""

    def __init__(self, logger, session_id):
        self.session_id = session_id
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        # Inject session_id into structured logs
        if "extra" in kwargs and "structured" in kwargs["extra"]:
            kwargs["extra"]["structured"]["session_id"] = self.session_id
        return msg, kwargs


class Agent:
    """Turn orchestrator: sends the conversation to the model and resolves its reply.

    Each user turn is exposed as a stream of ``RenderState``s: zero or more
    provisional renders (growing text, or a loading spinner while a tool runs)
    followed by exactly one terminal render with ``done=True``.
    """

    def __init__(
        self,
        plugins: list,
        ai_state: AIState | None = None,
        model_name: str | None = None,
        system_prompt: str | None = None,
        client: AsyncOpenAI | None = None,
        session_id: str | None = None,
    ):
        self.plugins = plugins
        self.ai_state = ai_state if ai_state is not None else AIState()
        self.model_name = model_name or config.get_model_name()
        self._instructions = system_prompt or config.get_system_prompt()
        self._client = client

        # Create session-specific logger with automatic session_id injection
        self.logger = AgentLoggerAdapter(logger, session_id or "main")

        # Initialize tool registry and register plugin tools
        self.tool_registry = ToolRegistry()
        for plugin in plugins:
            if hasattr(plugin, "hook_provide_tools"):
                for method in plugin.hook_provide_tools():
                    self.tool_registry.register_callable(method)

    @property
    def client(self) -> AsyncOpenAI:
        # Created on first use so sessions can exist before a key is configured
        if self._client is None:
            self._client = AsyncOpenAI(api_key=config.get_openai_api_key())
        return self._client

    def instructions(self) -> str:
        """Return the system prompt sent ahead of the history."""
        return self._instructions

    def log_item(self, item_type: str, extra: dict):
        structured = {"log_type": item_type, **extra}
        self.logger.info(
            f"{item_type.replace('_', ' ').title()} received", extra={"structured": structured}
        )

    def _build_messages(self) -> list:
        messages = [{"role": "system", "content": self.instructions()}]
        for message in self.ai_state.get():
            entry = {"role": message.role, "content": message.content}
            if message.name is not None:
                entry["name"] = message.name
            messages.append(entry)
        return messages

    async def _create_stream(self):
        create_args = {
            "model": self.model_name,
            "messages": self._build_messages(),
            "stream": True,
        }
        schemas = self.tool_registry.get_schemas()
        if schemas:
            create_args["functions"] = schemas
            create_args["function_call"] = "auto"

        try:
            return await self.client.chat.completions.create(**create_args)
        except openai.OpenAIError as e:
            self.logger.error(f"Error creating completion: {e}")
            raise ModelCallError(str(e)) from e

    def _render_tool_result(self, tool_name: str, result: dict) -> dict:
        if "error" in result and set(result) == {"error"}:
            return error_display(result["error"])
        for plugin in self.plugins:
            if hasattr(plugin, "hook_render_tool_result"):
                try:
                    display = plugin.hook_render_tool_result(tool_name, result)
                except Exception as e:
                    self.logger.error(
                        f"Error rendering {tool_name} from {plugin.__class__.__name__}: {e}"
                    )
                    continue
                if display is not None:
                    return display
        return text_display(json.dumps(result, ensure_ascii=False))

    async def submit_user_message(self, user_input: str) -> AsyncIterator[RenderState]:
        """Run one turn for ``user_input``, yielding provisional renders then the final one."""
        # Update the AI state with the new user message
        self.ai_state.update([*self.ai_state.get(), ModelMessage("user", user_input)])
        self.log_item("user_input", {"content": user_input})

        stream = await self._create_stream()

        content = ""
        function_name = None
        function_arguments = ""

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta

                function_call = getattr(delta, "function_call", None)
                if function_call is not None:
                    if function_name is None:
                        function_name = function_call.name or ""
                        # Show a spinner while the tool call streams in and runs
                        yield RenderState(spinner_display())
                    elif function_call.name:
                        function_name += function_call.name
                    function_arguments += function_call.arguments or ""
                    continue

                if delta.content and function_name is None:
                    content += delta.content
                    yield RenderState(text_display(content))
        except openai.OpenAIError as e:
            self.logger.error(f"Stream error: {e}")
            raise ModelCallError(str(e)) from e

        if function_name is not None:
            self.log_item(
                "tool_call", {"tool_name": function_name, "arguments": function_arguments}
            )
            result = await self.tool_registry.execute_function_call(
                function_name, function_arguments
            )
            self.log_item("tool_result", {"tool_name": function_name, "result": result})

            # Update the final AI state
            self.ai_state.done(
                [
                    *self.ai_state.get(),
                    ModelMessage(
                        "function",
                        json.dumps(result, ensure_ascii=False),
                        name=function_name,
                    ),
                ]
            )
            yield RenderState(self._render_tool_result(function_name, result), done=True)
            return

        self.log_item("output_text", {"content": content})
        self.ai_state.done([*self.ai_state.get(), ModelMessage("assistant", content)])
        yield RenderState(text_display(content), done=True)

    async def run_turn(self, user_input: str) -> dict:
        """Run one turn to completion and return the final render unit."""
        final = None
        async for render_state in self.submit_user_message(user_input):
            if render_state.done:
                final = render_state.display
        return final
