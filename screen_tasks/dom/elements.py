"""Parsed element index used for selector, role and attribute checks.

Selectors arrive from LLM output, so they are decoded (HTML entities,
including numeric and hex forms) and regex-escaped before any pattern
is built from them.
"""

import html
import re
from dataclasses import dataclass, field

from screen_tasks.dom.normalizer import DomNode, clean_dom, parse_dom

# Subtrees whose content never counts as page elements.
_SKIP_TAGS = frozenset({"script", "style", "template", "noscript"})

# Roles that also satisfy an expected role when it is missing.
ROLE_FALLBACKS: dict[str, tuple[str, ...]] = {
    "menuitem": ("list", "listitem"),
}

# Native elements that carry a role implicitly.
IMPLICIT_ROLE_TAGS: dict[str, tuple[str, ...]] = {
    "dialog": ("dialog",),
}

# Layer names, in evaluation order.
SELECTOR_LAYERS = ("id", "class", "data-testid", "name", "aria-label", "text", "tag")


def decode_selector(selector: str) -> str:
    """Decode HTML entities (named, decimal and hex) in a selector."""
    return html.unescape(selector or "")


def sanitize_selector(selector: str) -> str:
    """Decode entities, then escape regex metacharacters."""
    return re.escape(decode_selector(selector))


def looks_like_text(selector: str) -> bool:
    """Natural-language selectors contain a space or no ``_``/``-``."""
    return " " in selector or not re.search(r"[_-]", selector)


@dataclass
class Element:
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)


@dataclass
class ElementIndex:
    """Flat list of page elements plus the cleaned DOM string."""
    elements: list[Element]
    cleaned: str

    @classmethod
    def from_dom(cls, dom: str) -> "ElementIndex":
        elements: list[Element] = []
        _collect(parse_dom(dom), elements)
        return cls(elements=elements, cleaned=clean_dom(dom))

    def match_selector(self, selector: str) -> str | None:
        """Return the first layer under which ``selector`` exists, or None.

        Layers: exact id, class word match, data-testid, name, aria-label
        substring, free text (natural-language selectors only), bare tag.
        """
        if not selector or (not self.elements and not self.cleaned):
            return None
        decoded = decode_selector(selector).strip()
        if not decoded:
            return None
        safe = re.escape(decoded)

        exact = re.compile(rf"{safe}", re.I)
        word = re.compile(rf"\b{safe}\b", re.I)

        if self._any_attr("id", lambda v: exact.fullmatch(v.strip()) is not None):
            return "id"
        if self._any_attr("class", lambda v: word.search(v) is not None):
            return "class"
        if self._any_attr("data-testid", lambda v: exact.fullmatch(v.strip()) is not None):
            return "data-testid"
        if self._any_attr("name", lambda v: exact.fullmatch(v.strip()) is not None):
            return "name"
        if self._any_attr("aria-label", lambda v: exact.search(v) is not None):
            return "aria-label"
        if looks_like_text(decoded) and decoded.lower() in self.cleaned.lower():
            return "text"
        lowered = decoded.lower()
        if any(el.tag == lowered for el in self.elements):
            return "tag"
        return None

    def exists(self, selector: str) -> bool:
        return self.match_selector(selector) is not None

    def has_text(self, selector: str, text: str) -> bool:
        """Whether the element found by id/class holds ``text``.

        Looks at the window between the selector attribute and the next
        closing tag; falls back to ``text`` appearing anywhere in the DOM.
        """
        if not selector or not text or not self.cleaned:
            return False
        safe = sanitize_selector(selector)
        patterns = (
            re.compile(rf"""id=["']{safe}["'][^>]*>([\s\S]*?)</""", re.I),
            re.compile(rf"""class=["'][^"']*\b{safe}\b[^"']*["'][^>]*>([\s\S]*?)</""", re.I),
        )
        for pattern in patterns:
            match = pattern.search(self.cleaned)
            if match and text in match.group(1):
                return True
        return text in self.cleaned

    def has_role(self, role: str, fallbacks: bool = True) -> bool:
        """Whether an element with ``role`` exists.

        With ``fallbacks``, roles listed in ``ROLE_FALLBACKS`` also count.
        """
        role = (role or "").strip().lower()
        if not role:
            return False
        accepted = (role, *ROLE_FALLBACKS.get(role, ())) if fallbacks else (role,)
        implicit_tags = IMPLICIT_ROLE_TAGS.get(role, ())
        for el in self.elements:
            if el.attrs.get("role", "").strip().lower() in accepted:
                return True
            if el.tag in implicit_tags:
                return True
        return False

    def has_attribute_value(self, attribute: str, value: str) -> bool:
        """Whether some element has exactly ``attribute="value"``."""
        attribute = attribute.lower()
        exact = re.compile(re.escape(str(value)), re.I)
        return self._any_attr(attribute, lambda v: exact.fullmatch(v) is not None)

    def _any_attr(self, name: str, predicate) -> bool:
        for el in self.elements:
            value = el.attrs.get(name)
            if value is not None and predicate(value):
                return True
        return False


def _collect(node: DomNode, out: list[Element]) -> None:
    for child in node.children:
        if child.tag in _SKIP_TAGS:
            continue
        out.append(Element(tag=child.tag, attrs=child.attrs))
        _collect(child, out)
