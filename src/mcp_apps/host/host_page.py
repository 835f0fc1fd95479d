# mcp_apps/host/host_page.py
"""Embedded host page and widget shim for browser-hosted widgets.

The host page frames the widget in a sandboxed iframe and relays its
postMessage traffic to the Python :class:`AppBridge` over a websocket.
Host policy (display-mode coercion, link validation, tool access) lives in
Python; the page only relays.  The shim is injected into the widget HTML
and exposes the ``window.openai`` API on top of the same messages.
"""

from __future__ import annotations

# The templates use {var} for Python format() substitution and
# {{ / }} for literal braces in the JavaScript code.
HOST_PAGE_TEMPLATE = r"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Widget: {tool_name}</title>
  <style>
    :root {{
      --bg: #f6f6f6;
      --header-bg: #ffffff;
      --text: #202020;
      --border: #dddddd;
      --status-ok: #2e9d6f;
      --status-err: #d64541;
    }}
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{ background: var(--bg); color: var(--text); font-family: system-ui, -apple-system, sans-serif; }}
    #header {{
      display: flex; align-items: center; justify-content: space-between;
      padding: 8px 16px; background: var(--header-bg);
      border-bottom: 1px solid var(--border); font-size: 14px;
    }}
    #header .title {{ font-weight: 600; }}
    #header .status {{ font-size: 12px; opacity: 0.7; }}
    #header .status.connected {{ color: var(--status-ok); opacity: 1; }}
    #header .status.error {{ color: var(--status-err); opacity: 1; }}
    #app-container {{ width: 100%; height: calc(100vh - 40px); overflow: hidden; }}
    #app-container.bordered {{ padding: 12px; }}
    #app-iframe {{ width: 100%; height: 100%; border: none; background: #fff; }}
    #app-container.bordered #app-iframe {{ border: 1px solid var(--border); border-radius: 12px; }}
  </style>
</head>
<body>
  <div id="header">
    <span class="title">{tool_name}</span>
    <span id="status" class="status">Connecting&hellip;</span>
  </div>
  <div id="app-container" class="{container_class}">
    <iframe
      id="app-iframe"
      sandbox="allow-scripts allow-forms allow-same-origin allow-popups allow-popups-to-escape-sandbox"
      src="/app"
      {csp_attr}
    ></iframe>
  </div>

<script>
(function() {{
  "use strict";

  var WS_URL   = "ws://localhost:{port}/ws";
  var statusEl = document.getElementById("status");
  var iframe   = document.getElementById("app-iframe");
  var ws       = null;
  var initialized = false;

  function setStatus(text, cls) {{
    statusEl.textContent = text;
    statusEl.className = "status " + (cls || "");
  }}

  function postToApp(msg) {{
    if (iframe.contentWindow) {{
      iframe.contentWindow.postMessage(msg, "*");
    }}
  }}

  function applyDisplayMode(mode) {{
    var full = mode === "fullscreen";
    document.getElementById("header").style.display = full ? "none" : "flex";
    document.getElementById("app-container").style.height = full ? "100vh" : "calc(100vh - 40px)";
  }}

  var reconnectDelay = 1000;
  var MAX_RECONNECT_DELAY = 30000;

  function connectWs() {{
    initialized = false;
    ws = new WebSocket(WS_URL);

    ws.onopen = function() {{
      reconnectDelay = 1000;
      setStatus("Connected", "connected");
      startInitTimer();
    }};

    ws.onmessage = function(ev) {{
      var msg;
      try {{ msg = JSON.parse(ev.data); }} catch(e) {{ return; }}
      if (msg.result && msg.result.mode) {{
        applyDisplayMode(msg.result.mode);
      }}
      postToApp(msg);
    }};

    ws.onerror = function() {{
      setStatus("Connection error", "error");
    }};

    ws.onclose = function() {{
      setStatus("Disconnected, reconnecting", "error");
      setTimeout(function() {{
        reconnectDelay = Math.min(reconnectDelay * 2, MAX_RECONNECT_DELAY);
        connectWs();
      }}, reconnectDelay);
    }};
  }}

  function sendToBackend(msg) {{
    if (ws && ws.readyState === WebSocket.OPEN) {{
      ws.send(JSON.stringify(msg));
    }}
  }}

  window.addEventListener("message", function(ev) {{
    if (ev.source !== iframe.contentWindow) return;
    var msg = ev.data;
    if (!msg || msg.jsonrpc !== "2.0" || !msg.method) return;

    if (msg.method === "ui/notifications/initialized") {{
      initialized = true;
      clearTimeout(initTimer);
      setStatus("Widget ready", "connected");
    }}
    if (msg.method === "ui/open-external" && msg.id != null) {{
      var href = (msg.params && msg.params.href) || "";
      if (/^https?:\/\//i.test(href)) {{
        window.open(href, "_blank", "noopener");
      }}
    }}
    sendToBackend(msg);
  }});

  window.addEventListener("beforeunload", function() {{
    sendToBackend({{ jsonrpc: "2.0", method: "ui/notifications/teardown", params: {{}} }});
  }});

  var INIT_TIMEOUT = {init_timeout} * 1000;
  var initTimer = null;

  function startInitTimer() {{
    clearTimeout(initTimer);
    initTimer = setTimeout(function() {{
      if (!initialized) {{
        setStatus("Widget initialization timed out", "error");
      }}
    }}, INIT_TIMEOUT);
  }}

  connectWs();
  startInitTimer();
}})();
</script>
</body>
</html>"""


# Injected into the widget document ahead of its own scripts.
WIDGET_SHIM_TEMPLATE = r"""<script>
(function() {{
  "use strict";

  var TIMEOUT_MS = {timeout} * 1000;
  var nextId = 1;
  var pending = {{}};
  var globals = {{ theme: "light", locale: "en-US", displayMode: "inline", toolInput: {{}} }};

  function post(msg) {{ window.parent.postMessage(msg, "*"); }}

  function request(method, params) {{
    var id = "w-" + (nextId++);
    return new Promise(function(resolve, reject) {{
      var timer = setTimeout(function() {{
        delete pending[id];
        reject(new Error(method + " timed out"));
      }}, TIMEOUT_MS);
      pending[id] = {{ resolve: resolve, reject: reject, timer: timer }};
      post({{ jsonrpc: "2.0", id: id, method: method, params: params || {{}} }});
    }});
  }}

  function applyGlobals(delta) {{
    var changed = {{}};
    Object.keys(delta).forEach(function(key) {{
      if (delta[key] === undefined) return;
      globals[key] = delta[key];
      changed[key] = delta[key];
    }});
    window.dispatchEvent(new CustomEvent("openai:set_globals", {{ detail: {{ globals: changed }} }}));
  }}

  window.addEventListener("message", function(ev) {{
    var msg = ev.data;
    if (!msg || msg.jsonrpc !== "2.0") return;
    if (msg.method === "ui/notifications/set-globals") {{
      applyGlobals((msg.params && msg.params.globals) || {{}});
      return;
    }}
    var entry = msg.id != null ? pending[msg.id] : null;
    if (!entry) return;
    delete pending[msg.id];
    clearTimeout(entry.timer);
    if (msg.error) entry.reject(msg.error); else entry.resolve(msg.result);
  }});

  var api = {{
    callTool: function(name, args) {{
      return request("tools/call", {{ name: name, arguments: args || {{}} }}).then(function(result) {{
        if (result && result.isError) throw result;
        applyGlobals({{ toolOutput: result.structuredContent, toolResponseMetadata: result._meta }});
        return result;
      }});
    }},
    sendFollowUpMessage: function(args) {{
      return request("ui/message", {{ prompt: args.prompt }});
    }},
    openExternal: function(args) {{
      return request("ui/open-external", {{ href: args.href }});
    }},
    requestDisplayMode: function(args) {{
      return request("ui/request-display-mode", {{ mode: args.mode }}).then(function(result) {{
        applyGlobals({{ displayMode: result.mode }});
        return result;
      }});
    }},
    setWidgetState: function(state) {{
      applyGlobals({{ widgetState: state }});
      return request("ui/set-widget-state", {{ state: state }});
    }}
  }};

  window.openai = new Proxy(api, {{
    get: function(target, prop) {{
      return prop in target ? target[prop] : globals[prop];
    }}
  }});

  window.addEventListener("load", function() {{
    post({{ jsonrpc: "2.0", method: "ui/notifications/initialized", params: {{}} }});
  }});
}})();
</script>"""
