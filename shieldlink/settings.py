"""
Runtime settings for the link-serving and shield layers.
Values come from the environment (or a local .env file); nothing secret should be committed here.
"""
import os
from dotenv import load_dotenv

load_dotenv()

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
SECRET_KEY = os.getenv("SECRET_KEY", "shield-dev-secret-change-me")

# Obfuscated payload lifetime
PAYLOAD_TTL_SECONDS = int(os.getenv("PAYLOAD_TTL_SECONDS", "3600"))

# "memory" keeps the redirect latch per process, "redis" shares it between workers
SHIELD_LATCH_BACKEND = os.getenv("SHIELD_LATCH_BACKEND", "memory").lower()
SHIELD_LATCH_TTL_SECONDS = int(os.getenv("SHIELD_LATCH_TTL_SECONDS", "86400"))

# When set, proceed actions are POSTed to this endpoint instead of the local store
ANALYTICS_URL = os.getenv("ANALYTICS_URL") or None

# "random" picks a navigation technique per Ultra-Link session, "direct" always uses href
ULTRA_NAVIGATION = os.getenv("ULTRA_NAVIGATION", "random").lower()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "0").lower() in ("1", "true", "yes")

RESERVED_SLUGS = ["api", "s", "studio", "dashboard", "stats"]
