"""Live reload — the client script and the long-poll endpoint behind it.

Every HTML page gets a small script that long-polls
``<prefix>/long-poll``.  The request is held open until the reload
channel fires, then the page reloads itself.  If the server goes away
instead, the script polls ``<prefix>/back-up`` until it answers and
reloads then, so a restarted tool picks up its viewers again.
"""

from __future__ import annotations

import json
import logging

from aiohttp import web

from doclive.core.reload_channel import ReloadChannel
from doclive.models.project import Theme

logger = logging.getLogger(__name__)

RELOAD_CHANNEL = web.AppKey("reload_channel", ReloadChannel)

DEFAULT_PREFIX = "/__doclive"

_CLIENT_TEMPLATE = """
<script data-doclive>
(function () {
  var prefix = %(prefix)s;
  var retryMs = 1000;
  function reloadWhenBack() {
    fetch(prefix + "/back-up", { cache: "no-store" }).then(
      function () { location.reload(); },
      function () { setTimeout(reloadWhenBack, retryMs); }
    );
  }
  fetch(prefix + "/long-poll", { cache: "no-store" }).then(
    function (response) {
      if (response.ok) { location.reload(); } else { setTimeout(reloadWhenBack, retryMs); }
    },
    function () { setTimeout(reloadWhenBack, retryMs); }
  );
})();
</script>
"""

_THEME_TEMPLATE = """
<script data-doclive-theme>
try {
  localStorage.setItem("rustdoc-use-system-theme", "false");
  localStorage.setItem("rustdoc-theme", %(theme)s);
  if (typeof updateTheme === "function") { updateTheme(); }
} catch (e) {}
</script>
"""


def client_script(prefix: str = DEFAULT_PREFIX) -> str:
    """The reload script injected into every HTML response."""
    return _CLIENT_TEMPLATE % {"prefix": json.dumps(prefix)}


def theme_script(theme: Theme) -> str:
    """Script pinning rustdoc's display theme."""
    return _THEME_TEMPLATE % {"theme": json.dumps(theme.value)}


async def long_poll(request: web.Request) -> web.Response:
    """Hold the request until the next reload (200) or shutdown (503)."""
    channel = request.app[RELOAD_CHANNEL]
    async with channel.subscribe() as subscription:
        reloaded = await subscription.wait()
    headers = {"Cache-Control": "no-store"}
    if not reloaded:
        return web.Response(status=503, text="shutting down", headers=headers)
    return web.Response(text="reload", headers=headers)


async def back_up(request: web.Request) -> web.Response:
    return web.Response(text="ok", headers={"Cache-Control": "no-store"})


def add_routes(app: web.Application, prefix: str = DEFAULT_PREFIX) -> None:
    app.router.add_get(f"{prefix}/long-poll", long_poll)
    app.router.add_get(f"{prefix}/back-up", back_up)
