# mcp_apps/demo.py
"""Pizza-list demo app.

A small, complete app used by the CLI and the end-to-end tests: one
widget template and three tools exercising noauth, widget-accessible and
oauth2-only declarations.
"""

from __future__ import annotations

from typing import Any

from mcp_apps.config.settings import AppsSettings
from mcp_apps.server.app import AppServer
from mcp_apps.server.auth import TokenVerifier
from mcp_apps.server.invocation import ToolCall
from mcp_apps.server.models import SecurityScheme, ToolResponse

PIZZA_TEMPLATE_URI = "ui://widget/pizza-list.html"

PIZZA_PLACES: dict[str, list[dict[str, Any]]] = {
    "san francisco": [
        {"id": "tonys", "name": "Tony's Pizza Napoletana", "rating": 4.8},
        {"id": "golden-boy", "name": "Golden Boy Pizza", "rating": 4.6},
        {"id": "little-star", "name": "Little Star Pizza", "rating": 4.5},
    ],
    "new york": [
        {"id": "joes", "name": "Joe's Pizza", "rating": 4.7},
        {"id": "lucali", "name": "Lucali", "rating": 4.7},
    ],
    "chicago": [
        {"id": "lou-malnatis", "name": "Lou Malnati's", "rating": 4.6},
    ],
    "austin": [
        {"id": "via-313", "name": "Via 313", "rating": 4.7},
        {"id": "home-slice", "name": "Home Slice Pizza", "rating": 4.6},
    ],
}

# Component-only detail, delivered in _meta and never shown to the model
PLACE_DETAILS: dict[str, dict[str, Any]] = {
    "tonys": {"address": "1570 Stockton St", "hours": "12:00-22:00"},
    "golden-boy": {"address": "542 Green St", "hours": "11:30-23:30"},
    "little-star": {"address": "846 Divisadero St", "hours": "16:00-22:00"},
    "joes": {"address": "7 Carmine St", "hours": "10:00-04:00"},
    "lucali": {"address": "575 Henry St", "hours": "17:00-22:00"},
    "lou-malnatis": {"address": "439 N Wells St", "hours": "11:00-23:00"},
    "via-313": {"address": "1111 E 6th St", "hours": "11:00-23:00"},
    "home-slice": {"address": "1415 S Congress Ave", "hours": "11:00-23:00"},
}

PIZZA_LIST_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
    body { font-family: system-ui, sans-serif; margin: 0; padding: 12px; }
    body.dark { background: #1e1e1e; color: #f0f0f0; }
    li { padding: 6px 0; cursor: pointer; }
    li.favorite::after { content: " *"; }
  </style>
</head>
<body>
  <h3 id="title">Pizza</h3>
  <ul id="places"></ul>
  <button id="refresh">Refresh</button>
  <script>
    function render() {
      var out = window.openai.toolOutput || { places: [] };
      var state = window.openai.widgetState || {};
      document.body.className = window.openai.theme || "light";
      document.getElementById("title").textContent = "Pizza in " + (out.city || "...");
      var list = document.getElementById("places");
      list.innerHTML = "";
      (out.places || []).forEach(function(place) {
        var li = document.createElement("li");
        li.textContent = place.name + " (" + place.rating + ")";
        if (state.favorite === place.id) li.className = "favorite";
        li.onclick = function() { window.openai.setWidgetState({ favorite: place.id }); };
        list.appendChild(li);
      });
    }
    window.addEventListener("openai:set_globals", render);
    document.getElementById("refresh").onclick = function() {
      var city = (window.openai.toolOutput || {}).city || "San Francisco";
      window.openai.callTool("refresh_pizza_list", { city: city });
    };
  </script>
</body>
</html>
"""

CITY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"city": {"type": "string", "minLength": 1}},
    "required": ["city"],
    "additionalProperties": False,
}


def pizza_list_response(city: str) -> ToolResponse:
    places = PIZZA_PLACES.get(city.strip().lower(), [])
    return ToolResponse.text(
        f"Found {len(places)} pizza places in {city}.",
        structured_content={"city": city, "places": places},
        meta={
            "placeDetails": {
                p["id"]: PLACE_DETAILS[p["id"]] for p in places if p["id"] in PLACE_DETAILS
            }
        },
    )


def create_demo_server(
    settings: AppsSettings | None = None,
    *,
    verifier: TokenVerifier | None = None,
) -> AppServer:
    """Build the pizza app server."""
    if settings is None:
        settings = AppsSettings.load(supported_locales=["en", "es"])
    server = AppServer("pizza", settings=settings, verifier=verifier)

    server.publish_template(
        PIZZA_TEMPLATE_URI,
        PIZZA_LIST_HTML,
        name="pizza-list",
        description="Interactive list of pizza places",
        csp={"connect_domains": [], "resource_domains": ["https://persistent.oaistatic.com"]},
        prefers_border=True,
    )

    @server.tool(
        title="Show pizza list",
        input_schema={
            "type": "object",
            "properties": {"city": {"type": "string", "default": "San Francisco"}},
        },
        security_schemes=[SecurityScheme.noauth()],
        output_template=PIZZA_TEMPLATE_URI,
        invoking="Finding pizza places",
        invoked="Found pizza places",
        localized_status={
            "es": {"invoking": "Buscando pizzerías", "invoked": "Pizzerías encontradas"}
        },
    )
    def show_pizza_list(call: ToolCall) -> ToolResponse:
        """Show a list of pizza places in a city."""
        return pizza_list_response(call.arguments.get("city", "San Francisco"))

    @server.tool(
        title="Refresh pizza list",
        input_schema=CITY_SCHEMA,
        security_schemes=[SecurityScheme.noauth()],
        output_template=PIZZA_TEMPLATE_URI,
        widget_accessible=True,
        invoking="Refreshing",
        invoked="Refreshed",
        localized_status={"es": {"invoking": "Actualizando", "invoked": "Actualizado"}},
    )
    async def refresh_pizza_list(call: ToolCall) -> ToolResponse:
        """Reload the pizza places for a city from the widget."""
        return pizza_list_response(call.arguments["city"])

    @server.tool(
        title="Save favorite",
        input_schema={
            "type": "object",
            "properties": {"place_id": {"type": "string"}},
            "required": ["place_id"],
        },
        security_schemes=[SecurityScheme.oauth2("pizza.write")],
        widget_accessible=True,
    )
    def save_favorite(call: ToolCall) -> dict[str, Any]:
        """Save a pizza place to the signed-in user's favorites."""
        place_id = call.arguments["place_id"]
        return {
            "content": [{"type": "text", "text": f"Saved {place_id} for {call.auth.subject}."}],
            "structuredContent": {"favorite": place_id, "user": call.auth.subject},
        }

    return server
