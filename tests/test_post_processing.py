"""Tests for chatz_core.core.post_processing: complete-response cleanup."""

import pytest

from chatz_core.core.post_processing import (
    decode_html_entities,
    enhance_formatting,
    format_code_blocks,
    is_formula_shaped,
    post_process,
    rescue_formulas,
)


class TestFormatCodeBlocks:
    def test_trims_body_and_defaults_tag(self):
        assert format_code_blocks("```\n\n  x = 1  \n\n```") == "```code\nx = 1\n```"

    def test_keeps_declared_tag(self):
        assert format_code_blocks("```python\nprint(1)\n```") == "```python\nprint(1)\n```"

    def test_symbolic_tag(self):
        assert format_code_blocks("```c++\nint x;\n```") == "```c++\nint x;\n```"


class TestEnhanceFormatting:
    def test_bullets_outside_fences(self):
        text = "- one\n* two\n```py\n- not a bullet\n```\n  - nested"
        assert enhance_formatting(text) == (
            "• one\n• two\n```py\n- not a bullet\n```\n  • nested"
        )

    def test_bold_and_rules_untouched(self):
        text = "**bold** line\n---"
        assert enhance_formatting(text) == text

    def test_display_math_lines_untouched(self):
        text = "\\[\nx = a + b\n- c = d\n\\]\n- item"
        assert enhance_formatting(text) == "\\[\nx = a + b\n- c = d\n\\]\n• item"


class TestFormulaRescue:
    def test_physics_formula_in_javascript_fence(self):
        assert rescue_formulas("```javascript\nF = m * a\n```") == "\n\\[\nF = m * a\n\\]\n"

    def test_macro_in_code_fence(self):
        out = rescue_formulas("```code\n\\frac{a}{b}\n```")
        assert out == "\n\\[\n\\frac{a}{b}\n\\]\n"

    def test_real_code_left_alone(self):
        text = "```python\ndef area(r):\n    return 3.14 * r * r\n```"
        assert rescue_formulas(text) == text

    def test_other_languages_left_alone(self):
        text = "```sql\nx = a * b\n```"
        assert rescue_formulas(text) == text

    def test_macro_followed_by_subscript(self):
        out = rescue_formulas("```code\n\\sum_{i=1}^{n} i\n```")
        assert out == "\n\\[\n\\sum_{i=1}^{n} i\n\\]\n"

    def test_no_operator_and_no_macro_left_alone(self):
        text = "```python\nresult\n```"
        assert rescue_formulas(text) == text

    @pytest.mark.parametrize(
        "body, expected",
        [
            ("F = m * a", True),
            ("E = m c^2", True),
            ("x = 5", False),
            ("total = price * qty;", False),
            ("y = f(x) + 1", True),
            ("print(a + b)", False),
        ],
    )
    def test_formula_shape(self, body, expected):
        assert is_formula_shaped(body) is expected


class TestEntities:
    def test_full_table(self):
        text = "&amp; &lt; &gt; &quot; &#39; &nbsp; &copy; &reg;"
        assert decode_html_entities(text) == "& < > \" ' \u00a0 © ®"

    def test_nbsp_does_not_become_a_bullet_indent(self):
        once = post_process("&nbsp;- item")
        assert once == "\u00a0- item"
        assert post_process(once) == once

    def test_double_encoded_reaches_fixed_point(self):
        assert decode_html_entities("&amp;lt;b&amp;gt;") == "<b>"


class TestPostProcess:
    def test_pipeline_order(self):
        text = "Newton:\n```javascript\n  F = m * a  \n```\n- note &amp; more"
        assert post_process(text) == "Newton:\n\n\\[\nF = m * a\n\\]\n\n• note & more"

    def test_code_survives(self):
        text = "```\nconst x = 1;\n```"
        assert post_process(text) == "```code\nconst x = 1;\n```"

    @pytest.mark.parametrize(
        "text",
        [
            "```javascript\nF = m * a\n```",
            "Intro\n```\n\\sum_{i=1}^{n} i\n```\nOutro",
            "&amp;lt;div&amp;gt; &copy; 2024",
            "- a\n- b\n```py\n- c\n```",
            "```python\ndef f():\n    return 1\n```\n&nbsp;- item",
            "```math\nx = a + b\n- c = d\n```",
        ],
    )
    def test_idempotent(self, text):
        once = post_process(text)
        assert post_process(once) == once
