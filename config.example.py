# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real API keys. Put ZIMAGE_API_KEY in .env (local, gitignored) or export it.

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "ZIMAGE_APP_NAME": "App display name (default: zimage-studio).",
    "ZIMAGE_LOG_LEVEL": "Console logging level (default: INFO). The log file always records DEBUG.",
    "ZIMAGE_DATA_DIR": "Local data directory, holds zimage.log (default: .local/zimage).",
    # API
    "ZIMAGE_API_KEY": "Bearer token for the generation service (required). ZIMAGETURBO_API_KEY is also read.",
    "ZIMAGE_BASE_URL": "Service base URL (default: https://zimageturbo.ai).",
    "ZIMAGE_CONNECT_TIMEOUT_SECONDS": "HTTP connect timeout (default: 5).",
    "ZIMAGE_READ_TIMEOUT_SECONDS": "HTTP read timeout (default: 30).",
    # Polling
    "ZIMAGE_POLL_INTERVAL_SECONDS": "Delay between status queries (default: 2).",
    "ZIMAGE_MAX_POLL_ATTEMPTS": "Status queries before giving up with a timeout (default: 30).",
    # Generation
    "ZIMAGE_DEFAULT_ASPECT_RATIO": "Initial aspect ratio: 1:1, 4:3, 3:4, 16:9 or 9:16 (default: 1:1).",
}
