"""
Tests for editor scoring and button ranking (core/weibo_browser/dom.py)
"""
import json

from weibo_browser.dom import (
    COLLECT_EDITOR_CANDIDATES,
    EXACT_MATCH,
    NO_MATCH,
    PARTIAL_MATCH,
    EditorCandidate,
    build_call,
    match_kind,
    normalize_label,
    pick_button,
    pick_editor,
    score_editor,
)

NO_SIGNAL = [False, False]
SEND = [True, False]
IMAGE = [False, True]
BOTH = [True, True]


def editor(index, levels, width=500, height=200):
    return EditorCandidate(index=index, tag="textarea", levels=levels, width=width, height=height)


def clickable(index, text="", depth=0, visible=True, disabled=False, **labels):
    record = {"index": index, "tag": "button", "text": text, "depth": depth,
              "visible": visible, "disabled": disabled}
    record.update(labels)
    return record


class TestEditorScoring:
    """Composer signals and rendered area"""

    def test_signal_beats_plain_editor(self):
        """With equal area, the editor near the send button wins"""
        plain = editor(0, [NO_SIGNAL, NO_SIGNAL])
        composer = editor(1, [NO_SIGNAL, SEND])
        assert score_editor(composer) > score_editor(plain)
        assert pick_editor([plain, composer]) is composer

    def test_weights_per_level(self):
        candidate = editor(0, [NO_SIGNAL, IMAGE, BOTH], width=0, height=0)
        assert score_editor(candidate) == 4 + 6 + 4

    def test_area_points(self):
        # 500 * 200 = 100,000 px -> 2 points
        assert score_editor(editor(0, [])) == 2
        # capped at 4
        assert score_editor(editor(0, [], width=2000, height=2000)) == 4

    def test_levels_beyond_limit_ignored(self):
        deep = editor(0, [NO_SIGNAL] * 12 + [BOTH], width=0, height=0)
        assert score_editor(deep) == 0

    def test_area_only_tie_keeps_earliest(self):
        """Two plain editors of equal area: the first in document order wins"""
        first = editor(0, [NO_SIGNAL])
        second = editor(1, [NO_SIGNAL])
        assert score_editor(first) == score_editor(second) == 2
        assert pick_editor([first, second]) is first

    def test_small_plain_editor_not_picked(self):
        """No signal and under 50,000 px scores zero"""
        small = editor(0, [NO_SIGNAL], width=200, height=100)
        assert score_editor(small) == 0
        assert pick_editor([small]) is None

    def test_tie_keeps_earliest(self):
        first = editor(0, [SEND])
        second = editor(1, [SEND])
        assert pick_editor([first, second]) is first

    def test_zero_score_picks_nothing(self):
        assert pick_editor([editor(0, [NO_SIGNAL], width=0, height=0)]) is None
        assert pick_editor([]) is None

    def test_from_record(self):
        candidate = EditorCandidate.from_record(
            {"index": "3", "tag": "div", "levels": [[True, False]], "width": 640.5, "height": 120}
        )
        assert candidate.index == 3
        assert candidate.levels == [[True, False]]
        assert candidate.area == 640.5 * 120


class TestLabelMatching:

    def test_normalize(self):
        assert normalize_label("\u200b 发送\u00a0\n") == "发送"
        assert normalize_label("图\u200d片") == "图片"
        assert normalize_label("a  \t b") == "a b"
        assert normalize_label(None) == ""

    def test_match_kinds(self):
        assert match_kind("发送", {"text": "发送"}) == EXACT_MATCH
        assert match_kind("发送", {"ariaLabel": "发送", "text": ""}) == EXACT_MATCH
        assert match_kind("发送", {"title": "立即发送"}) == PARTIAL_MATCH
        assert match_kind("发送", {"text": "取消"}) == NO_MATCH


class TestButtonRanking:
    """Choosing what to click for a label"""

    def test_exact_before_substring(self):
        buttons = [clickable(0, "发送中"), clickable(1, "发送")]
        assert pick_button("发送", buttons) == 1

    def test_disabled_exact_skipped(self):
        """A disabled exact match loses to an enabled substring match"""
        buttons = [clickable(0, "发送中"), clickable(1, "发送", disabled=True)]
        assert pick_button("发送", buttons) == 0

    def test_all_disabled(self):
        assert pick_button("发送", [clickable(0, "发送", disabled=True)]) is None

    def test_invisible_ignored(self):
        buttons = [clickable(0, "发送", visible=False), clickable(1, "发送")]
        assert pick_button("发送", buttons) == 1

    def test_nearest_scope_wins(self):
        """A match in the editor's nearest container beats a better match further out"""
        buttons = [clickable(0, "发送", depth=4), clickable(1, "发送微博", depth=1)]
        assert pick_button("发送", buttons) == 1

    def test_out_of_scope_excluded(self):
        buttons = [clickable(0, "发送", depth=None), clickable(1, "发送", depth=2, disabled=True)]
        assert pick_button("发送", buttons) is None

    def test_no_scope_uses_whole_container(self):
        buttons = [clickable(0, "发送中", depth=None), clickable(1, "发送", depth=None)]
        assert pick_button("发送", buttons) == 1

    def test_text_fallback_prefers_container(self):
        texts = [{"index": 5, "visible": True, "disabled": False, "depth": None,
                  "container": {"index": 6, "visible": True, "disabled": False}}]
        assert pick_button("图片", [], texts) == 6

    def test_text_inside_disabled_button_not_clicked(self):
        """<button disabled><span>发送</span></button> must not be clicked through its span"""
        buttons = [clickable(0, "发送", disabled=True)]
        texts = [{"index": 1, "visible": True, "disabled": False, "depth": 0,
                  "container": {"index": 0, "visible": True, "disabled": True}}]
        assert pick_button("发送", buttons, texts) is None

    def test_text_inside_hidden_container_skipped(self):
        texts = [{"index": 5, "visible": True, "disabled": False, "depth": None,
                  "container": {"index": 6, "visible": False, "disabled": False}},
                 {"index": 7, "visible": True, "disabled": False, "depth": None,
                  "container": {"index": 8, "visible": True, "disabled": False}}]
        assert pick_button("图片", [], texts) == 8

    def test_bare_text_clicked_when_no_container(self):
        texts = [{"index": 5, "visible": True, "disabled": False, "depth": None, "container": None}]
        assert pick_button("图片", [], texts) == 5

    def test_empty_label(self):
        assert pick_button("  ", [clickable(0, "发送")]) is None


def test_build_call_embeds_arguments():
    expression = build_call(COLLECT_EDITOR_CANDIDATES, scope="#homeWrap", signals=["发送", "图片"])
    assert expression.startswith(f"({COLLECT_EDITOR_CANDIDATES})(")
    assert expression.endswith(")")
    payload = expression[len(COLLECT_EDITOR_CANDIDATES) + 3:-1]
    assert json.loads(payload) == {"scope": "#homeWrap", "signals": ["发送", "图片"]}
    assert "发送" in expression, "Labels are embedded unescaped"
