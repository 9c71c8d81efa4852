"""
page.py -- Actions on the attached Weibo tab
============================================

Everything here runs through Runtime.evaluate / DOM.* on one flattened
session. Readiness checks are polls: a check that never turns true returns
False when its budget runs out, while protocol failures propagate.
"""

import asyncio
import logging
import os

from .cdp import expect_field
from .config import (
    BUTTON_CANDIDATE_ATTR,
    BUTTON_SCOPE_MAX_DEPTH,
    CLICKABLE_SELECTOR,
    EDITOR_CANDIDATE_ATTR,
    EDITOR_MARK_ATTR,
    EDITOR_MAX_DEPTH,
    EDITOR_POLL_INTERVAL,
    EDITOR_SELECTOR,
    EDITOR_SIGNAL_WEIGHTS,
    FILE_INPUT_SELECTOR,
    HOME_SCOPE_SELECTOR,
    IMAGE_LABEL,
    IMAGE_PICKER_SETTLE,
    IMAGE_UPLOAD_SETTLE,
    READY_STATE_TIMEOUT,
    TEXT_BEARING_SELECTOR,
)
from .dom import (
    CLICK_BUTTON,
    COLLECT_BUTTON_CANDIDATES,
    COLLECT_EDITOR_CANDIDATES,
    DOCUMENT_COMPLETE,
    EDITOR_MARK_VALID,
    INJECT_TEXT,
    MARK_EDITOR,
    EditorCandidate,
    build_call,
    normalize_label,
    pick_button,
    pick_editor,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PROBING
# =============================================================================

async def evaluate(cdp, session_id, expression):
    """
    Evaluate ``expression`` in the page and return its JSON value.

    A script that throws yields None (logged at debug); the caller treats it
    like a falsy result.
    """
    result = await cdp.send(
        "Runtime.evaluate",
        {"expression": expression, "returnByValue": True},
        session_id=session_id,
    )
    remote = expect_field(result, "result", dict, "Runtime.evaluate")
    details = result.get("exceptionDetails")
    if details:
        logger.debug(f"Page script threw: {details.get('text') if isinstance(details, dict) else details}")
        return None
    return remote.get("value")


async def wait_until(check, timeout, interval=EDITOR_POLL_INTERVAL, sleep=asyncio.sleep):
    """Await ``check()`` every ``interval`` seconds until it is truthy or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if await check():
            return True
        await sleep(interval)
    return False


async def poll_until(cdp, session_id, expression, timeout, interval=EDITOR_POLL_INTERVAL):
    """
    Re-evaluate a boolean page expression until it is true.

    Returns:
        bool: True once the expression held, False if ``timeout`` ran out.
    """
    async def check():
        return bool(await evaluate(cdp, session_id, expression))

    return await wait_until(check, timeout, interval)


def is_readable_file(path):
    return os.path.isfile(path) and os.access(path, os.R_OK)


# =============================================================================
# WEIBO PAGE
# =============================================================================

class WeiboPage:
    """
    The Weibo home tab, seen through one CDP session.

    Usage:
        page = WeiboPage(cdp, session)
        if await page.wait_for_editor(120):
            await page.set_text("Hello")
    """

    def __init__(self, cdp, session, sleep=asyncio.sleep):
        self.cdp = cdp
        self.session = session
        self.session_id = session.session_id
        self._sleep = sleep

    async def send(self, method, params=None):
        return await self.cdp.send(method, params, session_id=self.session_id)

    async def evaluate(self, expression):
        return await evaluate(self.cdp, self.session_id, expression)

    async def wait_for_load(self, timeout=READY_STATE_TIMEOUT):
        async def complete():
            return bool(await self.evaluate(DOCUMENT_COMPLETE))

        return await wait_until(complete, timeout, EDITOR_POLL_INTERVAL, sleep=self._sleep)

    # =========================================================================
    # EDITOR
    # =========================================================================

    async def resolve_editor(self):
        """
        Score the visible editors in the home container and mark the best.

        Returns:
            bool: True if an editor with a positive score was marked.
        """
        records = await self.evaluate(build_call(
            COLLECT_EDITOR_CANDIDATES,
            scope=HOME_SCOPE_SELECTOR,
            selector=EDITOR_SELECTOR,
            candidateAttr=EDITOR_CANDIDATE_ATTR,
            signals=[signal for signal, _ in EDITOR_SIGNAL_WEIGHTS],
            maxDepth=EDITOR_MAX_DEPTH,
        ))
        if not isinstance(records, list):
            return False

        candidates = []
        for record in records:
            try:
                candidates.append(EditorCandidate.from_record(record))
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipped malformed editor record: {record!r}")

        best = pick_editor(candidates)
        if best is None:
            return False
        return bool(await self.evaluate(build_call(
            MARK_EDITOR,
            index=best.index,
            candidateAttr=EDITOR_CANDIDATE_ATTR,
            markAttr=EDITOR_MARK_ATTR,
        )))

    async def wait_for_editor(self, timeout):
        return await wait_until(self.resolve_editor, timeout, EDITOR_POLL_INTERVAL, sleep=self._sleep)

    async def editor_marked(self):
        return bool(await self.evaluate(build_call(EDITOR_MARK_VALID, markAttr=EDITOR_MARK_ATTR)))

    async def set_text(self, text):
        """
        Replace the editor content with ``text``.

        A stale or missing mark triggers a fresh resolution first.

        Returns:
            bool: False if no editor could be found or changed.
        """
        if not await self.editor_marked():
            logger.debug("Editor mark missing, resolving again")
            await self.resolve_editor()
        return bool(await self.evaluate(build_call(
            INJECT_TEXT,
            text=text,
            scope=HOME_SCOPE_SELECTOR,
            selector=EDITOR_SELECTOR,
            markAttr=EDITOR_MARK_ATTR,
        )))

    # =========================================================================
    # BUTTONS
    # =========================================================================

    async def click_button(self, label):
        """
        Click the control labelled ``label`` nearest to the editor.

        Returns:
            bool: False if nothing enabled matched.
        """
        label = normalize_label(label)
        if not label:
            return False

        report = await self.evaluate(build_call(
            COLLECT_BUTTON_CANDIDATES,
            label=label,
            scope=HOME_SCOPE_SELECTOR,
            markAttr=EDITOR_MARK_ATTR,
            buttonAttr=BUTTON_CANDIDATE_ATTR,
            clickableSelector=CLICKABLE_SELECTOR,
            textSelector=TEXT_BEARING_SELECTOR,
            maxDepth=BUTTON_SCOPE_MAX_DEPTH,
        ))
        if not isinstance(report, dict):
            return False

        index = pick_button(label, report.get("clickables") or [], report.get("texts") or [])
        if index is None:
            logger.debug(f"No clickable match for {label!r}")
            return False
        return bool(await self.evaluate(build_call(
            CLICK_BUTTON,
            index=index,
            buttonAttr=BUTTON_CANDIDATE_ATTR,
        )))

    # =========================================================================
    # IMAGES
    # =========================================================================

    async def attach_images(self, paths):
        """
        Hand the readable files in ``paths`` to the last file input.

        Missing or unreadable paths are dropped. The image button is clicked
        first so Weibo renders its uploader; the last input[type=file] in the
        document is taken as the one it just revealed.

        Returns:
            int: Number of files given to the input (0 if none or no input).
        """
        existing = []
        for path in paths:
            if is_readable_file(path):
                existing.append(os.path.abspath(path))
            else:
                logger.debug(f"Skipping missing image {path}")
        if not existing:
            return 0

        await self.click_button(IMAGE_LABEL)
        await self._sleep(IMAGE_PICKER_SETTLE)

        document = await self.send("DOM.getDocument", {})
        root = expect_field(document, "root", dict, "DOM.getDocument")
        root_id = expect_field(root, "nodeId", int, "DOM.getDocument")

        result = await self.send("DOM.querySelectorAll", {"nodeId": root_id, "selector": FILE_INPUT_SELECTOR})
        node_ids = expect_field(result, "nodeIds", list, "DOM.querySelectorAll")
        if not node_ids:
            logger.debug("No file input on the page")
            return 0

        await self.send("DOM.setFileInputFiles", {"nodeId": node_ids[-1], "files": existing})
        await self._sleep(IMAGE_UPLOAD_SETTLE)
        return len(existing)
