"""Static stand-in page served to classified bots on Ultra-Link configurations."""
from __future__ import annotations

from html import escape

from .session import ProtectedLink

SITE_NAME = "Shield Link"

_ARTICLE = """
<article>
  <h1>Understanding Web Security and Link Protection</h1>
  <p>In today's digital landscape, protecting web resources and ensuring safe browsing
  experiences has become increasingly important. This article explores modern approaches
  to web security and link protection mechanisms.</p>
  <h2>The Importance of Secure Redirects</h2>
  <p>Secure redirect systems help protect users from malicious websites while maintaining
  a smooth browsing experience. These systems analyze incoming traffic and apply various
  security measures to ensure safety.</p>
  <h3>Key Features of Modern Protection Systems</h3>
  <ul>
    <li>Real-time threat detection and analysis</li>
    <li>Adaptive content delivery based on visitor patterns</li>
    <li>Advanced encryption and obfuscation techniques</li>
    <li>Comprehensive analytics and monitoring</li>
  </ul>
  <p>By implementing these features, web services can provide better protection against
  automated attacks while maintaining accessibility for legitimate users.</p>
</article>
"""


def render(link: ProtectedLink) -> str:
    """Destination-free HTML that needs no script to read.

    Only the link's public metadata reaches the head; the body is the same
    article for every link and every visitor.
    """
    title = escape(link.meta_title or link.title or SITE_NAME)
    description = escape(link.meta_description or link.description or "Discover amazing content and connect with creators")
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <title>{title}</title>
    <meta name="description" content="{description}">
    <meta property="og:title" content="{title}">
    <meta property="og:description" content="{description}">
    <meta property="og:type" content="article">
    <meta name="robots" content="noindex, nofollow">
  </head>
  <body style="background: #ffffff; max-width: 56rem; margin: 4rem auto; padding: 0 1rem; font-family: Georgia, serif;">
    {_ARTICLE}
  </body>
</html>"""


__all__ = ["render"]
