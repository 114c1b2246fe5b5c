import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, Optional, Tuple

from .agent import Agent
from .plugins.flight_plugin import FlightPlugin
from .plugins.weather_plugin import WeatherPlugin
from .render import RenderState, user_display
from .state import AIState, DisplayItem, UIState

logger = logging.getLogger(__name__)

DisplayCallback = Callable[[DisplayItem], Awaitable[None]]
RenderCallback = Callable[[RenderState], Awaitable[None]]


def create_default_agent(ai_state: AIState, session_id: str, client=None) -> Agent:
    """Create the weather assistant with its flight and weather tools."""
    plugins = [FlightPlugin(), WeatherPlugin()]
    return Agent(plugins, ai_state=ai_state, client=client, session_id=session_id)


class ChatSession:
    """One conversation: owns both histories and the agent that advances them."""

    def __init__(self, session_id: str, client=None):
        self.session_id = session_id
        self.ai_state = AIState()
        self.ui_state = UIState()
        self.agent = create_default_agent(self.ai_state, session_id, client=client)
        # One turn at a time; a second submission waits for the first
        self.turn_lock = asyncio.Lock()

    async def send(
        self,
        text: str,
        on_user_item: Optional[DisplayCallback] = None,
        on_render: Optional[RenderCallback] = None,
    ) -> Tuple[DisplayItem, DisplayItem]:
        """Run a full turn and return the user and response display items.

        ``on_user_item`` is awaited once the user item is appended, and
        ``on_render`` for every provisional render of the response.
        """
        async with self.turn_lock:
            user_item = self.ui_state.append(user_display(text))
            if on_user_item:
                await on_user_item(user_item)

            final_display = None
            async for render_state in self.agent.submit_user_message(text):
                if render_state.done:
                    final_display = render_state.display
                elif on_render:
                    await on_render(render_state)

            response_item = self.ui_state.append(final_display)
            return user_item, response_item

    def history(self) -> dict:
        return {"messages": self.ai_state.to_list(), "display": self.ui_state.to_list()}


class SessionManager:
    def __init__(self, client_factory: Optional[Callable[[], object]] = None):
        self.sessions: Dict[str, ChatSession] = {}
        self.client_factory = client_factory

    def create_session(self) -> ChatSession:
        """Create a new session and register it under a fresh id."""
        session_id = str(uuid.uuid4())
        client = self.client_factory() if self.client_factory else None
        session = ChatSession(session_id, client=client)
        self.sessions[session_id] = session
        logger.info(f"Created new session: {session_id}")
        return session

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        """Get session by ID."""
        return self.sessions.get(session_id)

    def cleanup_session(self, session_id: str) -> bool:
        """Remove a session. Returns True if it existed."""
        if session_id in self.sessions:
            del self.sessions[session_id]
            logger.info(f"Cleaned up session: {session_id}")
            return True
        return False

    def get_session_count(self) -> int:
        """Get total number of active sessions."""
        return len(self.sessions)
