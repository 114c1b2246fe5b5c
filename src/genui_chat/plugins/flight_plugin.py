from ..render import flight_card
from ..tool_registry import tool


class FlightPlugin:
    """Plugin providing a mock flight lookup."""

    departure = "New York"
    arrival = "San Francisco"

    @tool(
        description="Get the information for a flight",
        flightNumber="the number of the flight",
    )
    async def get_flight_info(self, flightNumber: str) -> dict:  # noqa: N803
        """Return synthetic flight data for a flight number."""
        return {
            "flightNumber": flightNumber,
            "departure": self.departure,
            "arrival": self.arrival,
        }

    def hook_provide_tools(self):
        """Return tools this plugin provides for auto-registration."""
        return [self.get_flight_info]

    def hook_render_tool_result(self, tool_name: str, result: dict):
        """Render the flight card for results of this plugin's tool."""
        if tool_name != "get_flight_info":
            return None
        return flight_card(result)
