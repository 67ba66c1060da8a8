"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    STRIDER_WORKSPACE_CONTAINER  — Shared workspace data-volume container (optional)
    CONTENT_SERVICE_URL          — Base URL of the content ingestion API
    CONTENT_SERVICE_ADMIN_APIKEY — Admin key used to issue transient API keys
    PRESENTER_URL                — Base URL of the content presenter
    GITHUB_API_URL               — GitHub API root (default: https://api.github.com)
    TLS_VERIFY                   — Verify TLS certificates of deconst services (default: true)
    HTTP_TIMEOUT                 — Seconds before a REST call gives up (default: 30)
    CONTROL_VERBOSE              — Emit debug-tier build output (default: false)
    LOG_DRAIN_TIMEOUT            — Seconds to wait for container output to drain (default: 10)

Workspace Strategy:
    When STRIDER_WORKSPACE_CONTAINER is set, build containers mount the
    workspace from that container with --volumes-from. Otherwise the job's
    workspace directory is bind-mounted from the local filesystem.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


WORKSPACE_CONTAINER = os.getenv("STRIDER_WORKSPACE_CONTAINER") or None

CONTENT_SERVICE_URL = os.getenv("CONTENT_SERVICE_URL", "")
CONTENT_SERVICE_ADMIN_APIKEY = os.getenv("CONTENT_SERVICE_ADMIN_APIKEY", "")
PRESENTER_URL = os.getenv("PRESENTER_URL", "")
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")

TLS_VERIFY = _flag("TLS_VERIFY", "true")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", 30))

VERBOSE = _flag("CONTROL_VERBOSE")

# Container output normally ends with the container; this only bounds a stuck stream
LOG_DRAIN_TIMEOUT = float(os.getenv("LOG_DRAIN_TIMEOUT", 10))
