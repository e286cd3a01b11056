# ==============================================================================
# Embed Configuration
# ==============================================================================
"""
Resolve the tracker's embed configuration.

Precedence (first hit wins):
1. Page-level globals set before the tracker loads
   (siteCredential / site_credential, endpoint / apiUrl, debug)
2. Query parameters on the tracker script URL (key, api, debug)
3. AgentSettings defaults (endpoint only)

A site credential is mandatory; without one the agent does not start.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlparse

from clickpulse.errors import MissingCredentialError
from clickpulse.utils.config import AgentSettings

TRUTHY_VALUES = ("1", "true", "yes")


@dataclass(frozen=True)
class EmbedConfig:
    """Resolved configuration of one tracker embed."""

    site_credential: str
    endpoint: str
    debug: bool = False


def is_truthy(value: Any) -> bool:
    """Interpret an embed debug flag."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_VALUES


def _first(mapping: Mapping, *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value not in (None, ""):
            return value
    return None


def resolve_embed_config(
    page_globals: Mapping | None = None,
    script_src: str | None = None,
    defaults: AgentSettings | None = None,
) -> EmbedConfig:
    """
    Resolve the embed configuration of a tracker instance.

    Args:
        page_globals: Globals defined on the page before the tracker loads
        script_src: URL the tracker script was loaded from
        defaults: Agent settings supplying the default endpoint

    Returns:
        Resolved EmbedConfig

    Raises:
        MissingCredentialError: If no site credential is configured
    """
    page_globals = page_globals or {}
    defaults = defaults or AgentSettings()

    query = {}
    if script_src:
        query = {key: values[0] for key, values in parse_qs(urlparse(script_src).query).items()}

    credential = _first(page_globals, "siteCredential", "site_credential") or _first(query, "key")
    if not credential:
        raise MissingCredentialError(
            "No site credential configured (set siteCredential or ?key= on the script URL)"
        )

    endpoint = _first(page_globals, "endpoint", "apiUrl") or _first(query, "api") or defaults.endpoint

    debug = page_globals.get("debug")
    if debug is None:
        debug = query.get("debug")

    return EmbedConfig(site_credential=str(credential), endpoint=endpoint, debug=is_truthy(debug))
