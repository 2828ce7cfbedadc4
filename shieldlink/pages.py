"""HTML served by the page contract: the countdown gate and the not-found page."""
from html import escape

from .shield.config import FeatureFlag
from .shield.session import ProtectedLink

FEATURE_LABELS = {
    FeatureFlag.ADAPTIVE_CONTENT: "Adaptive content protection",
    FeatureFlag.AI_DETECTION: "AI-powered threat detection",
    FeatureFlag.JS_OBFUSCATION: "Advanced redirect encryption",
}

# The runtime: reports the environment probe and interactions over the session
# channel, renders state/tick pushes and performs the navigation it is told to.
GATE_RUNTIME = """
(function () {
  var root = document.getElementById("shield");
  var count = document.getElementById("shield-count");
  var status = document.getElementById("shield-status");
  var button = document.getElementById("shield-continue");
  var scheme = location.protocol === "https:" ? "wss:" : "ws:";
  var ws = new WebSocket(scheme + "//" + location.host + root.dataset.channel);
  var moves = 0;

  function probe() {
    var d = document;
    return {
      has_graphics: !!window.WebGLRenderingContext,
      has_webrtc: !!(window.RTCPeerConnection || window.webkitRTCPeerConnection),
      has_media_devices: !!(navigator.mediaDevices && navigator.mediaDevices.getUserMedia),
      screen_valid: screen.width > 0 && screen.height > 0,
      viewport_valid: innerWidth > 0 && innerHeight > 0,
      has_plugins: !!(navigator.plugins && navigator.plugins.length > 0),
      pixel_ratio_valid: window.devicePixelRatio > 0,
      has_permissions: !!navigator.permissions,
      has_languages: !!(navigator.languages && navigator.languages.length > 0),
      webdriver: !!navigator.webdriver || navigator.userAgent.indexOf("HeadlessChrome") !== -1,
      automation_markers: !!(d.__selenium_unwrapped || d.__webdriver_evaluate || d.__driver_evaluate)
    };
  }

  function send(message) {
    if (ws.readyState === 1) ws.send(JSON.stringify(message));
  }

  function report(kind) {
    send({type: "interaction", kind: kind});
  }

  function navigate(strategy, url) {
    if (strategy === "assign") return location.assign(url);
    if (strategy === "replace") return location.replace(url);
    if (strategy === "anchor") {
      var a = document.createElement("a");
      a.href = url;
      document.body.appendChild(a);
      return a.click();
    }
    location.href = url;
  }

  function show(message) {
    count.textContent = message.remaining;
    if (message.state === "ready") {
      if (button) { button.disabled = false; button.hidden = false; }
      else { status.textContent = "Redirecting automatically..."; }
    } else if (message.state === "cloaked" || message.state === "not_found") {
      root.hidden = true;
    } else if (message.state === "error") {
      status.textContent = "This link could not be opened.";
      if (button) button.hidden = true;
    }
  }

  ws.onopen = function () {
    send({type: "hello", payload: root.dataset.payload, probe: probe()});
  };
  ws.onmessage = function (event) {
    var message = JSON.parse(event.data);
    if (message.type === "navigate") return navigate(message.strategy, message.location);
    show(message);
  };

  addEventListener("mousemove", function () { if (moves++ < 16) report("pointer"); });
  addEventListener("click", function (event) { if (event.target !== button) report("click"); });
  addEventListener("touchstart", function () { report("touch"); });
  addEventListener("keydown", function () { report("key"); });
  if (button) button.addEventListener("click", function () { report("click"); send({type: "proceed"}); });
})();
"""

BASE_STYLE = "background: linear-gradient(135deg, #111827, #000); color: #fff; font-family: system-ui, sans-serif; min-height: 100vh; display: flex; align-items: center; justify-content: center; margin: 0;"


def gate_page(link: ProtectedLink, payload: str, channel: str) -> str:
    """Countdown gate. Carries the encoded payload, never the destination."""
    config = link.config
    title = escape(link.title or "your destination")
    if link.is_ultra_link:
        heading, subtitle = "ULTRA LINK Protection", "Maximum security verification in progress"
    else:
        heading, subtitle = "Shield Protection Active", "Verifying your request for security"

    features = ""
    if link.is_ultra_link and config.features:
        items = "".join(
            f"<li>{FEATURE_LABELS[flag]}</li>" for flag in FeatureFlag if config.has(flag)
        )
        features = f'<ul class="features">{items}</ul>'

    if config.auto_proceed:
        action = f'<p id="shield-status">You will be redirected to {title} when the countdown ends.</p>'
    else:
        action = (
            '<p id="shield-status"></p>'
            f'<button id="shield-continue" type="button" disabled hidden>Continue to {title}</button>'
        )

    seconds = -(-config.timer_ms // 1000)
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Shield Link - Share your content</title>
    <meta name="description" content="Discover amazing content and connect with creators">
    <meta name="robots" content="noindex, nofollow">
  </head>
  <body style="{BASE_STYLE}">
    <main id="shield" data-channel="{escape(channel)}" data-payload="{escape(payload)}" style="max-width: 28rem; text-align: center;">
      <h1>{heading}</h1>
      <p>{subtitle}</p>
      <div><span id="shield-count">{seconds}</span> seconds</div>
      {features}
      {action}
      <p style="font-size: 0.75rem; opacity: 0.5;">This security check helps protect against automated access and ensures a safe browsing experience.</p>
    </main>
    <script>{GATE_RUNTIME}</script>
  </body>
</html>"""


def not_found_page() -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
  <head><meta charset="utf-8"><title>Page not found</title><meta name="robots" content="noindex, nofollow"></head>
  <body style="{BASE_STYLE}"><h1>This link does not exist.</h1></body>
</html>"""
