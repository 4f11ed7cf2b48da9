"""Point-additive rubrics for extracted markup/style payloads."""
import re
from typing import List, Optional

from design_intel.models import ComponentCategory, ComponentType, DesignStyle


# Checked in order; the first keyword hit decides the component type.
TYPE_KEYWORDS = [
    (ComponentType.button, ("button", "btn")),
    (ComponentType.card, ("card", "box")),
    (ComponentType.form, ("form", "input")),
    (ComponentType.hero, ("hero", "banner")),
    (ComponentType.navigation, ("nav", "menu")),
]

TYPE_CATEGORIES = {
    ComponentType.button: ComponentCategory.interaction,
    ComponentType.card: ComponentCategory.display,
    ComponentType.form: ComponentCategory.input,
    ComponentType.hero: ComponentCategory.layout,
    ComponentType.navigation: ComponentCategory.navigation,
    ComponentType.footer: ComponentCategory.layout,
    ComponentType.modal: ComponentCategory.feedback,
    ComponentType.gallery: ComponentCategory.media,
    ComponentType.slider: ComponentCategory.media,
    ComponentType.alert: ComponentCategory.feedback,
    ComponentType.menu: ComponentCategory.navigation,
}

# (substring in CSS, points)
AESTHETIC_FEATURES = [
    ("gradient", 8),
    ("box-shadow", 6),
    ("border-radius", 5),
    ("transform", 5),
    ("transition", 5),
    ("backdrop-filter", 10),
    ("filter:", 5),
    ("grid", 10),
    ("gap:", 5),
    ("font-family", 3),
    ("font-weight", 2),
    ("line-height", 3),
    ("letter-spacing", 2),
    ("text-align", 2),
    ("@media", 10),
]

SEMANTIC_TAGS = [
    ("gradient", "gradient"),
    ("shadow", "shadow"),
    ("border-radius", "rounded"),
    ("transform", "transform"),
    ("transition", "transition"),
    ("animation", "animation"),
    ("flex", "flexbox"),
    ("grid", "grid"),
    ("hover", "hover"),
    ("responsive", "responsive"),
    ("mobile", "mobile"),
    ("dark", "dark-mode"),
    ("light", "light-mode"),
]

_COLOR_RE = re.compile(r"#[0-9a-fA-F]{3,6}|rgba?\(|hsla?\(")
_HEX_RE = re.compile(r"#[0-9a-f]{3,6}")
_RELATIVE_UNIT_RE = re.compile(r"\d(?:\.\d+)?(?:rem|em)\b")
_VIEWPORT_UNIT_RE = re.compile(r"\d(?:\.\d+)?(?:vh|vw)\b")
_TAG_RE = re.compile(r"<[^>]+>")
_RULE_RE = re.compile(r"[^{}]*{[^}]*}")
_CLASS_ATTR_RE = re.compile(r"class=[\"']([^\"']+)[\"']")
_SELECTOR_RE = re.compile(r"[.#]([\w-]+)")


def clean_code(code: Optional[str]) -> str:
    lines = [line.strip() for line in str(code or "").splitlines()]
    return "\n".join(line for line in lines if line).replace("\t", "  ").strip()


def detect_component_type(html: str, css: str) -> ComponentType:
    content = (html + css).lower()
    for component_type, keywords in TYPE_KEYWORDS:
        if any(keyword in content for keyword in keywords):
            return component_type
    return ComponentType.card


def category_for_type(component_type: ComponentType) -> ComponentCategory:
    return TYPE_CATEGORIES.get(component_type, ComponentCategory.display)


def score_aesthetics(html: str, css: str) -> int:
    """
    Score visual/code quality of a payload (1-100).

    Starts at 50, rewards modern CSS (gradients, shadows, flex/grid layout,
    media queries, relative units), penalises ``!important`` and absolute
    positioning without a positioned parent.
    """
    score = 50
    for feature, points in AESTHETIC_FEATURES:
        if feature in css:
            score += points

    if "flex" in css:
        score += 8
    if len(_COLOR_RE.findall(css)) > 2:
        score += 5
    if "margin" in css or "padding" in css:
        score += 3
    if "justify-content" in css or "align-items" in css:
        score += 5
    if _RELATIVE_UNIT_RE.search(css):
        score += 3
    if _VIEWPORT_UNIT_RE.search(css):
        score += 3

    if "!important" in css:
        score -= 5
    if "position: absolute" in css and "position: relative" not in css:
        score -= 3

    return min(max(score, 1), 100)


def assess_performance(html: str, css: str, js: str) -> int:
    """Penalise oversized CSS/JS, reward modern layout primitives and ARIA markup (10-100)."""
    score = 75
    if len(css) > 3000:
        score -= 15
    if len(js) > 2000:
        score -= 20
    if "flexbox" in css or "grid" in css:
        score += 10
    if "aria-" in html:
        score += 15
    return min(max(score, 10), 100)


def uniqueness_score(html: str, css: str) -> int:
    """Distinct-character ratio scaled to 0-100.

    A coarse proxy for novelty: it measures character variety, not structure.
    """
    content = html + css
    if not content:
        return 0
    return int(round(min(len(set(content)) / len(content) * 200, 100)))


def analyze_complexity(html: str, css: str, js: Optional[str] = None) -> int:
    complexity = 1

    element_count = len(_TAG_RE.findall(html))
    if element_count > 20:
        complexity += 2
    elif element_count > 10:
        complexity += 1

    rule_count = len(_RULE_RE.findall(css))
    if rule_count > 15:
        complexity += 2
    elif rule_count > 8:
        complexity += 1

    for feature in ("@keyframes", "transform", "clip-path", "filter:", "backdrop-filter"):
        if feature in css:
            complexity += 1

    if js:
        complexity += 1
        if len(js) > 500:
            complexity += 1
        if "addEventListener" in js:
            complexity += 1

    return min(complexity, 10)


def detect_style(css: str) -> DesignStyle:
    content = css.lower()

    if "backdrop-filter" in content and "blur" in content:
        return DesignStyle.glassmorphism
    if "box-shadow" in content and ("inset" in content or content.count("box-shadow") > 1):
        return DesignStyle.neumorphism
    if "gradient" in content:
        return DesignStyle.gradient
    if "dark" in content or "#000" in content or "rgb(0" in content or "black" in content:
        return DesignStyle.dark

    color_count = len(_HEX_RE.findall(content))
    if color_count <= 2 and content.count("box-shadow") <= 1:
        return DesignStyle.minimal
    if color_count > 5:
        return DesignStyle.colorful
    if "border-radius" not in content and "border" in content:
        return DesignStyle.brutalist
    return DesignStyle.modern


def extract_tags(html: str, css: str, existing: Optional[List[str]] = None) -> List[str]:
    tags: List[str] = []

    def _add(tag: str) -> None:
        tag = tag.lower()
        if tag not in tags:
            tags.append(tag)

    for tag in existing or []:
        _add(tag)
    for match in _CLASS_ATTR_RE.findall(html):
        for cls in match.split():
            if len(cls) > 2:
                _add(cls)
    for selector in _SELECTOR_RE.findall(css):
        if len(selector) > 2:
            _add(selector)

    content = (html + css).lower()
    for needle, tag in SEMANTIC_TAGS:
        if needle in content:
            _add(tag)
    return tags[:20]


def detect_frameworks(html: str, css: str, js: str) -> List[str]:
    content = html + css + js
    frameworks = []
    if "tailwind" in content or "tw-" in css:
        frameworks.append("tailwind")
    if "bootstrap" in content:
        frameworks.append("bootstrap")
    return frameworks or ["vanilla"]


def is_mobile_optimized(css: str) -> bool:
    return "@media" in css and "max-width" in css
