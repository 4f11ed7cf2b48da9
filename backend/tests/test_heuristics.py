from design_intel.models import ComponentCategory, ComponentType, DesignStyle
from design_intel.services import heuristics


def test_clean_code_drops_blank_lines_and_outer_whitespace():
    assert heuristics.clean_code("  <div>\n\n   <p>x</p>\n</div>  ") == "<div>\n<p>x</p>\n</div>"
    assert heuristics.clean_code(None) == ""


def test_component_type_uses_first_keyword_hit():
    assert heuristics.detect_component_type("<button class='btn'>Go</button>", "") == ComponentType.button
    # "btn" wins over "card" because button keywords are checked first
    assert heuristics.detect_component_type("<div class='card'><a class='btn'></a></div>", "") == ComponentType.button
    assert heuristics.detect_component_type("<section class='banner'></section>", "") == ComponentType.hero
    assert heuristics.detect_component_type("<div></div>", "") == ComponentType.card
    assert heuristics.category_for_type(ComponentType.form) == ComponentCategory.input
    assert heuristics.category_for_type(ComponentType.pricing) == ComponentCategory.display


def test_aesthetic_score_is_additive_and_bounded():
    assert heuristics.score_aesthetics("", "") == 50
    assert heuristics.score_aesthetics("", "color: red !important;") == 45
    assert heuristics.score_aesthetics("", "border-radius: 4px; box-shadow: 0 0 1px;") == 61
    rich = (
        "display: grid; gap: 1rem; backdrop-filter: blur(4px); background: linear-gradient(#fff, #000);"
        "box-shadow: 0 1px #111; transition: all .2s; transform: scale(1); @media (max-width: 600px) {}"
        "display: flex; justify-content: center; padding: 2em; height: 100vh; font-family: Inter;"
    )
    assert heuristics.score_aesthetics("", rich) == 100


def test_performance_assessment():
    assert heuristics.assess_performance("", "", "") == 75
    # layout bonus is keyed on the "flexbox" / "grid" keywords, not on display declarations
    assert heuristics.assess_performance("", ".a { display: flex; }", "") == 75
    assert heuristics.assess_performance("", "/* flexbox */ .a { gap: 4px; }", "") == 85
    assert heuristics.assess_performance("", ".a { grid-template-columns: 1fr; }", "") == 85
    assert heuristics.assess_performance("<nav aria-label='main'>", ".a { display: grid; }", "") == 100
    assert heuristics.assess_performance("", "x" * 3001, "y" * 2001) == 40


def test_uniqueness_score():
    assert heuristics.uniqueness_score("", "") == 0
    assert heuristics.uniqueness_score("aaaa", "") == 50
    assert heuristics.uniqueness_score("abcd", "") == 100


def test_complexity_counts_elements_rules_and_script():
    assert heuristics.analyze_complexity("<div></div>", ".a{}") == 1
    html = "<i></i>" * 11
    css = ".a{}" * 9 + "@keyframes spin {}"
    js = "el.addEventListener('click', go)"
    assert heuristics.analyze_complexity(html, css, js) == 1 + 2 + 1 + 1 + 1 + 1


def test_detect_style():
    assert heuristics.detect_style("backdrop-filter: blur(8px);") == DesignStyle.glassmorphism
    assert heuristics.detect_style("box-shadow: inset 0 0 4px #ccc;") == DesignStyle.neumorphism
    assert heuristics.detect_style("background: linear-gradient(red, blue);") == DesignStyle.gradient
    assert heuristics.detect_style("background: #000;") == DesignStyle.dark
    assert heuristics.detect_style("color: #333;") == DesignStyle.minimal
    assert heuristics.detect_style("#111 #222 #333 #444 #555 #666") == DesignStyle.colorful


def test_tags_frameworks_and_mobile():
    tags = heuristics.extract_tags("<a class='cta-link big'></a>", ".cta-link:hover { display: flex; }", ["Featured"])
    assert tags[:2] == ["featured", "cta-link"]
    assert "big" in tags
    assert "flexbox" in tags and "hover" in tags

    assert heuristics.detect_frameworks("<div class='tw-flex'>", ".tw-flex{}", "") == ["tailwind"]
    assert heuristics.detect_frameworks("", "", "") == ["vanilla"]
    assert heuristics.is_mobile_optimized("@media (max-width: 600px) { .a { display: none; } }") is True
    assert heuristics.is_mobile_optimized(".a { display: none; }") is False
