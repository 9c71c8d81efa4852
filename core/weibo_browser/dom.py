"""
dom.py -- In-page scripts and element scoring
=============================================

Every Runtime.evaluate is a stateless round trip: no element handle survives
between two calls. The scripts below therefore tag elements with data-*
attributes and report plain feature records. Scoring and ranking happen in
Python, which then refers back to the chosen element through its tag.

Markers
-------
  data-weibo-candidate="N"   editor candidate N of the last collection
  data-weibo-button="N"      clickable/text candidate N of the last collection
  data-weibo-editor="true"   the chosen editor (at most one element)

Candidate tags are rewritten by each collection. The editor mark survives
until the editor is resolved again.
"""

import json
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .config import (
    AREA_PER_POINT,
    EDITOR_MAX_DEPTH,
    EDITOR_SIGNAL_WEIGHTS,
    MAX_AREA_POINTS,
)

# =============================================================================
# SCRIPT PLUMBING
# =============================================================================

JS_HELPERS = r"""
  const normalize = (value) => String(value ?? '')
    .replace(/[\u200B-\u200D\uFEFF]/g, '')
    .replace(/[\s\u00A0]+/g, ' ')
    .trim();

  // Editor visibility also rejects fully transparent elements
  const isVisible = (el) => {
    if (!(el instanceof Element)) return false;
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') return false;
    const rects = el.getClientRects();
    return !!rects && rects.length > 0;
  };

  const isShown = (el) => {
    if (!(el instanceof Element)) return false;
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') return false;
    return el.getClientRects().length > 0;
  };

  const isDisabled = (el) => {
    if (!(el instanceof Element)) return false;
    if (el.getAttribute('disabled') !== null) return true;
    const ariaDisabled = el.getAttribute('aria-disabled');
    return !!ariaDisabled && normalize(ariaDisabled).toLowerCase() === 'true';
  };

  const isEditor = (el) => {
    if (!el) return false;
    if ((el.tagName || '').toLowerCase() === 'textarea') return true;
    if (el.getAttribute && el.getAttribute('contenteditable') === 'true') return true;
    return !!el.isContentEditable;
  };

  const clearAttr = (name) => {
    for (const el of Array.from(document.querySelectorAll('[' + name + ']'))) {
      try { el.removeAttribute(name); } catch (e) {}
    }
  };

  const scopeRoot = () => (args.scope && document.querySelector(args.scope)) || document.body;
"""


def _function(body):
    return "(args) => {\n" + JS_HELPERS + body + "\n}"


def build_call(source, **args):
    """Render ``source`` (a JS function of one ``args`` object) as an expression."""
    return f"({source})({json.dumps(args, ensure_ascii=False)})"


# =============================================================================
# SCRIPTS
# =============================================================================

COLLECT_EDITOR_CANDIDATES = _function(r"""
  const root = scopeRoot();
  clearAttr(args.candidateAttr);

  const candidates = Array.from(root.querySelectorAll(args.selector))
    .filter((el) => el instanceof HTMLElement && isVisible(el));

  return candidates.map((el, index) => {
    el.setAttribute(args.candidateAttr, String(index));

    // levels[d][s]: does the d-th ancestor (0 = the element) mention signal s
    const levels = [];
    let node = el;
    for (let depth = 0; depth < args.maxDepth && node; depth++) {
      const text = (node.textContent || '').replace(/\s+/g, '');
      levels.push(args.signals.map((signal) => text.includes(signal)));
      node = node.parentElement;
      if (node === root) break;
    }

    const rect = el.getBoundingClientRect();
    return {
      index,
      tag: (el.tagName || '').toLowerCase(),
      levels,
      width: rect.width,
      height: rect.height,
    };
  });
""")

MARK_EDITOR = _function(r"""
  const chosen = document.querySelector('[' + args.candidateAttr + '="' + args.index + '"]');
  clearAttr(args.markAttr);
  clearAttr(args.candidateAttr);
  if (!chosen) return false;
  chosen.setAttribute(args.markAttr, 'true');
  return true;
""")

EDITOR_MARK_VALID = _function(r"""
  const el = document.querySelector('[' + args.markAttr + '="true"]');
  return !!el && isEditor(el) && isVisible(el);
""")

INJECT_TEXT = _function(r"""
  const targetText = args.text;

  let el = document.querySelector('[' + args.markAttr + '="true"]');
  if (el && (!isEditor(el) || !isVisible(el))) el = null;

  if (!el) {
    el = Array.from(scopeRoot().querySelectorAll(args.selector))
      .find((candidate) => isEditor(candidate) && isVisible(candidate)) || null;
  }
  if (!el) return false;

  try {
    if (typeof el.scrollIntoView === 'function') el.scrollIntoView({ block: 'center', inline: 'center' });
  } catch (e) {}
  try {
    if (typeof el.focus === 'function') el.focus();
  } catch (e) {}

  const notify = (node) => {
    try {
      node.dispatchEvent(new InputEvent('input', { bubbles: true, data: targetText, inputType: 'insertText' }));
    } catch (e) {
      try { node.dispatchEvent(new Event('input', { bubbles: true })); } catch (e2) {}
    }
    try { node.dispatchEvent(new Event('change', { bubbles: true })); } catch (e) {}
  };

  if ((el.tagName || '').toLowerCase() === 'textarea') {
    // Native setter, so framework value trackers see a real change
    try {
      const desc = Object.getOwnPropertyDescriptor(HTMLTextAreaElement.prototype, 'value');
      if (desc && typeof desc.set === 'function') desc.set.call(el, targetText);
      else el.value = targetText;
    } catch (e) {
      try { el.value = targetText; } catch (e2) { return false; }
    }
    notify(el);
    return true;
  }

  let inserted = false;
  try {
    if (typeof document.execCommand === 'function') {
      try { document.execCommand('selectAll', false, null); } catch (e) {}
      inserted = document.execCommand('insertText', false, targetText);
    }
  } catch (e) {}

  if (!inserted) {
    try { el.textContent = targetText; } catch (e) { return false; }
  }
  notify(el);
  return true;
""")

COLLECT_BUTTON_CANDIDATES = _function(r"""
  const target = normalize(args.label);
  if (!target) return { clickables: [], texts: [] };

  const base = scopeRoot();
  clearAttr(args.buttonAttr);

  // Ancestors of the marked editor, nearest first, stopping before the base
  const ancestors = [];
  let node = document.querySelector('[' + args.markAttr + '="true"]');
  for (let depth = 0; depth < args.maxDepth && node; depth++) {
    if (node === base) break;
    ancestors.push(node);
    node = node.parentElement;
  }

  const depthOf = (el) => {
    for (let i = 0; i < ancestors.length; i++) {
      if (ancestors[i] !== el && ancestors[i].contains(el)) return i;
    }
    return null;
  };

  let counter = 0;
  const describe = (el, withText) => {
    if (!el.hasAttribute(args.buttonAttr)) el.setAttribute(args.buttonAttr, String(counter++));
    const record = {
      index: Number(el.getAttribute(args.buttonAttr)),
      tag: (el.tagName || '').toLowerCase(),
      visible: isShown(el),
      disabled: isDisabled(el),
      depth: depthOf(el),
    };
    if (withText) {
      record.ariaLabel = normalize(el.getAttribute('aria-label'));
      record.title = normalize(el.getAttribute('title'));
      record.text = normalize(el.textContent);
    }
    return record;
  };

  const mentions = (el) => [el.getAttribute('aria-label'), el.getAttribute('title'), el.textContent]
    .some((value) => normalize(value).includes(target));

  const clickables = Array.from(base.querySelectorAll(args.clickableSelector))
    .filter((el) => isShown(el) && mentions(el))
    .map((el) => describe(el, true));

  const texts = Array.from(base.querySelectorAll(args.textSelector))
    .filter((el) => isShown(el) && normalize(el.textContent).includes(target))
    .map((el) => {
      const container = typeof el.closest === 'function' ? el.closest(args.clickableSelector) : null;
      const record = describe(el, false);
      record.container = container ? describe(container, false) : null;
      return record;
    });

  return { clickables, texts };
""")

CLICK_BUTTON = _function(r"""
  const el = document.querySelector('[' + args.buttonAttr + '="' + args.index + '"]');
  clearAttr(args.buttonAttr);
  if (!el || isDisabled(el)) return false;
  try {
    if (typeof el.scrollIntoView === 'function') el.scrollIntoView({ block: 'center', inline: 'center' });
  } catch (e) {}
  try {
    if (el instanceof HTMLElement && typeof el.focus === 'function') el.focus();
  } catch (e) {}
  try {
    el.click();
    return true;
  } catch (e) {
    return false;
  }
""")

DOCUMENT_COMPLETE = "document.readyState === 'complete'"


# =============================================================================
# EDITOR SCORING
# =============================================================================

@dataclass
class EditorCandidate:
    index: int
    tag: str = ""
    levels: List[Sequence[bool]] = field(default_factory=list)
    width: float = 0.0
    height: float = 0.0

    @classmethod
    def from_record(cls, record):
        return cls(
            index=int(record["index"]),
            tag=str(record.get("tag") or ""),
            levels=[list(level) for level in record.get("levels") or []],
            width=float(record.get("width") or 0),
            height=float(record.get("height") or 0),
        )

    @property
    def area(self):
        return max(0.0, self.width) * max(0.0, self.height)


def score_editor(candidate, weights=EDITOR_SIGNAL_WEIGHTS):
    """
    Points for one editor candidate.

    Each ancestor level (the element itself first, at most EDITOR_MAX_DEPTH)
    adds the weight of every signal it mentions, once per level: +6 for the
    send label, +4 for the image label. Rendered area adds one point per
    50,000 px², capped at 4.
    """
    score = 0
    for level in candidate.levels[:EDITOR_MAX_DEPTH]:
        for hit, (_, weight) in zip(level, weights):
            if hit:
                score += weight

    area = candidate.area
    if area > 0:
        score += min(MAX_AREA_POINTS, math.floor(area / AREA_PER_POINT))
    return score


def pick_editor(candidates) -> Optional[EditorCandidate]:
    """Highest score above zero wins; ties keep the earlier candidate."""
    best = None
    best_score = -1
    for candidate in candidates:
        score = score_editor(candidate)
        if score > best_score:
            best = candidate
            best_score = score
    if best is None or best_score <= 0:
        return None
    return best


# =============================================================================
# BUTTON RANKING
# =============================================================================

_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
_WHITESPACE = re.compile(r"[\s\u00a0]+")

NO_MATCH = 0
PARTIAL_MATCH = 1
EXACT_MATCH = 2


def normalize_label(value):
    """Drop zero-width characters, collapse whitespace runs, trim."""
    text = _ZERO_WIDTH.sub("", "" if value is None else str(value))
    return _WHITESPACE.sub(" ", text).strip()


def match_kind(label, record):
    """EXACT_MATCH if aria-label, title or text equals ``label``, PARTIAL_MATCH if one contains it."""
    fields = [normalize_label(record.get(key)) for key in ("ariaLabel", "title", "text")]
    if any(value == label for value in fields):
        return EXACT_MATCH
    if any(label in value for value in fields if value):
        return PARTIAL_MATCH
    return NO_MATCH


def pick_button(label, clickables, texts=()):
    """
    Choose the element to click for ``label`` from a collector report.

    1. Scope: the nearest ancestor of the marked editor holding a visible
       matching clickable (``depth`` is the index of the nearest such
       ancestor containing the record); none -> the whole base container.
    2. Matching clickables in scope, exact before substring, document
       order within each kind, disabled ones skipped.
    3. Text fallback in scope: the enclosing clickable when visible and
       enabled. A text element with no clickable ancestor is clicked
       itself when enabled; one inside an unusable clickable is skipped.

    Returns:
        int: the ``index`` of the element to click, or None.
    """
    label = normalize_label(label)
    if not label:
        return None

    matching = [
        record for record in clickables
        if record.get("visible", True) and match_kind(label, record) != NO_MATCH
    ]
    depths = [record["depth"] for record in matching if record.get("depth") is not None]
    scope = min(depths) if depths else None

    def in_scope(record):
        if scope is None:
            return True
        depth = record.get("depth")
        return depth is not None and depth <= scope

    ranked = sorted(
        (record for record in matching if in_scope(record)),
        key=lambda record: -match_kind(label, record),
    )
    for record in ranked:
        if not record.get("disabled"):
            return record["index"]

    for record in texts:
        if not record.get("visible", True) or not in_scope(record):
            continue
        container = record.get("container")
        if container:
            # Never click through a disabled or hidden control
            if container.get("visible") and not container.get("disabled"):
                return container["index"]
            continue
        if not record.get("disabled"):
            return record["index"]
    return None
