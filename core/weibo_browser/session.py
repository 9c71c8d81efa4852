"""
Find (or open) the Weibo tab and attach a flattened CDP session to it.
"""

import logging
from dataclasses import dataclass
from urllib.parse import urlparse

from .cdp import expect_field
from .config import WEIBO_URL

logger = logging.getLogger(__name__)

# Domains every page action relies on
SESSION_DOMAINS = ("Page", "Runtime", "DOM")


@dataclass
class PageSession:
    target_id: str
    url: str
    session_id: str


def destination_host(url):
    return urlparse(url).hostname or url


async def find_page_target(cdp, url):
    """Return the first page target already showing ``url``'s host, or None."""
    result = await cdp.send("Target.getTargets")
    targets = expect_field(result, "targetInfos", list, "Target.getTargets")
    host = destination_host(url)
    for target in targets:
        if not isinstance(target, dict):
            continue
        if target.get("type") == "page" and host in (target.get("url") or ""):
            return target
    return None


async def attach_to_page(cdp, url=WEIBO_URL):
    """
    Attach to the tab showing ``url``, creating it if needed.

    The session uses flattened addressing (commands carry the sessionId).
    Page, Runtime and DOM are enabled before this returns.

    Returns:
        PageSession
    """
    target = await find_page_target(cdp, url)
    if target is not None:
        target_id = expect_field(target, "targetId", str, "Target.getTargets")
        target_url = target.get("url") or url
        logger.debug(f"Reusing tab {target_id[:8]} ({target_url})")
    else:
        result = await cdp.send("Target.createTarget", {"url": url})
        target_id = expect_field(result, "targetId", str, "Target.createTarget")
        target_url = url
        logger.debug(f"Opened tab {target_id[:8]}")

    result = await cdp.send("Target.attachToTarget", {"targetId": target_id, "flatten": True})
    session_id = expect_field(result, "sessionId", str, "Target.attachToTarget")

    for domain in SESSION_DOMAINS:
        await cdp.send(f"{domain}.enable", {}, session_id=session_id)

    cdp.on("Inspector.detached", _log_detached)
    cdp.on("Inspector.targetCrashed", _log_crashed)
    return PageSession(target_id=target_id, url=target_url, session_id=session_id)


def _log_detached(params, session_id):
    logger.warning(f"Page session detached: {params.get('reason', 'unknown reason')}")


def _log_crashed(params, session_id):
    logger.warning("Weibo tab crashed")
