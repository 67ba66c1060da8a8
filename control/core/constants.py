"""
Constants
Centralised storage for container paths, workspace environment and HTTP identity.
"""
CONTROL_REPO_PATH = "/var/control-repo"
NPM_CACHE_DIR = ".npmcache"
TMP_DIR = ".tmp"
ENV_CONTROL_ROOT = "CONTROL_ROOT"
ENV_NPM_CACHE = "NPM_CONFIG_CACHE"
ENV_TMPDIR = "TMPDIR"
USER_AGENT = "httpx strider-deconst-control"
