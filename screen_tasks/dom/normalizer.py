"""DOM normalization: cleaning, skeleton extraction and content hashing.

Cleaning is deterministic so that hashes of cleaned DOMs can be used for
before/after equality checks. The skeleton keeps only interactive
elements (plus the ancestors needed to reach them) with a small attribute
allow-list, which cuts the size of a typical page by most of its bytes.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from html import escape
from html.parser import HTMLParser

logger = logging.getLogger(__name__)

DEFAULT_HASH_MAX_BYTES = 50_000
DEFAULT_MAX_TEXT_LENGTH = 100

INTERACTIVE_TAGS = frozenset({
    "a", "button", "input", "select", "textarea", "option", "label",
})

DISCARD_TAGS = frozenset({
    "style", "script", "noscript", "svg", "path", "link", "meta", "head", "template",
})

INTERACTIVE_ROLES = frozenset({
    "button", "link", "menuitem", "tab", "checkbox", "radio", "switch", "option",
    "listbox", "combobox", "textbox", "searchbox", "slider", "spinbutton", "menu",
    "menubar", "tablist", "tree", "treeitem", "grid", "gridcell", "row",
})

CLICK_HANDLER_ATTRS = ("onclick", "ng-click", "v-on:click", "@click", "data-action")

KEEP_ATTRS = (
    "id", "name", "type", "href", "value", "placeholder", "role", "aria-label",
    "title", "data-testid", "for", "action", "method",
)

KEPT_DATA_ATTRS = ("has-popup", "state", "expanded")

VOID_TAGS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta",
    "source", "track", "wbr",
})

SELF_CLOSING_OUTPUT = frozenset({"input", "br", "hr", "img", "meta", "link"})

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.I)
_STYLE_RE = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.I)
_SVG_RE = re.compile(r"<svg\b[^<]*(?:(?!</svg>)<[^<]*)*</svg>", re.I)
_BASE64_RE = re.compile(r"data:[^;\s\"']+;base64,[A-Za-z0-9+/=]+")
_STYLE_ATTR_RE = re.compile(r"""\sstyle=(?:"[^"]*"|'[^']*')""", re.I)
_DATA_ATTR_RE = re.compile(
    r"""\sdata-(?!(?:%s)=)[a-z0-9_-]+=(?:"[^"]*"|'[^']*')""" % "|".join(KEPT_DATA_ATTRS),
    re.I,
)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


# ─────────────────────────────────────────────────────────────────
# Cleaning and hashing
# ─────────────────────────────────────────────────────────────────

def clean_dom(dom: str) -> str:
    """Strip scripts, styles, SVGs, base64 payloads and non-semantic attributes.

    SVG blocks become ``[SVG]`` and base64 data URIs become ``[BASE64]``.
    Inline ``style`` attributes and ``data-*`` attributes other than
    ``data-has-popup``, ``data-state`` and ``data-expanded`` are removed,
    and whitespace is collapsed.
    """
    if not dom:
        return ""
    cleaned = _SCRIPT_RE.sub("", dom)
    cleaned = _STYLE_RE.sub("", cleaned)
    cleaned = _SVG_RE.sub("[SVG]", cleaned)
    cleaned = _BASE64_RE.sub("[BASE64]", cleaned)
    cleaned = _STYLE_ATTR_RE.sub("", cleaned)
    cleaned = _DATA_ATTR_RE.sub("", cleaned)
    cleaned = _WS_RE.sub(" ", cleaned)
    return cleaned.strip()


def hash_dom(dom: str, max_bytes: int = DEFAULT_HASH_MAX_BYTES) -> str:
    """SHA-256 hex digest of the cleaned DOM, truncated to ``max_bytes``."""
    data = clean_dom(dom).encode("utf-8")[:max_bytes]
    return hashlib.sha256(data).hexdigest()


def extract_text_content(dom: str, max_length: int = 2000) -> str:
    """Plain text of a DOM string with tags removed and whitespace collapsed."""
    text = _TAG_RE.sub(" ", clean_dom(dom))
    text = _WS_RE.sub(" ", text).strip()
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return text


# ─────────────────────────────────────────────────────────────────
# Tree building
# ─────────────────────────────────────────────────────────────────

@dataclass
class DomNode:
    """Minimal element node produced by :class:`TreeBuilder`."""
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list["DomNode"] = field(default_factory=list)
    # Direct text chunks, interleaved positions are not preserved.
    texts: list[str] = field(default_factory=list)

    def find(self, tag: str) -> "DomNode | None":
        for child in self.children:
            if child.tag == tag:
                return child
            found = child.find(tag)
            if found is not None:
                return found
        return None


class TreeBuilder(HTMLParser):
    """Build a forgiving element tree from an HTML string.

    Unclosed elements are closed implicitly when an ancestor closes, and
    stray end tags are ignored.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.root = DomNode(tag="#document")
        self._stack: list[DomNode] = [self.root]

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        node = DomNode(tag=tag.lower(), attrs={k.lower(): (v if v is not None else "") for k, v in attrs})
        self._stack[-1].children.append(node)
        if node.tag not in VOID_TAGS:
            self._stack.append(node)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        node = DomNode(tag=tag.lower(), attrs={k.lower(): (v if v is not None else "") for k, v in attrs})
        self._stack[-1].children.append(node)

    def handle_endtag(self, tag: str) -> None:
        lowered = tag.lower()
        for depth in range(len(self._stack) - 1, 0, -1):
            if self._stack[depth].tag == lowered:
                del self._stack[depth:]
                return

    def handle_data(self, data: str) -> None:
        if data.strip():
            self._stack[-1].texts.append(data)


def parse_dom(dom: str) -> DomNode:
    """Parse ``dom`` into a :class:`DomNode` tree rooted at ``#document``."""
    builder = TreeBuilder()
    builder.feed(dom or "")
    builder.close()
    return builder.root


# ─────────────────────────────────────────────────────────────────
# Skeleton extraction
# ─────────────────────────────────────────────────────────────────

@dataclass
class SkeletonResult:
    """Skeleton DOM plus observability metrics."""
    skeleton: str
    element_count: int
    original_size: int
    skeleton_size: int
    compression_ratio: float


def is_interactive(node: DomNode) -> bool:
    """Whether an element is something a user can act on."""
    if node.tag in INTERACTIVE_TAGS:
        return True
    attrs = node.attrs
    if any(name in attrs for name in CLICK_HANDLER_ATTRS):
        return True
    if attrs.get("role") in INTERACTIVE_ROLES:
        return True
    tabindex = attrs.get("tabindex")
    if tabindex is not None:
        try:
            if int(tabindex.strip()) >= 0:
                return True
        except ValueError:
            pass
    return attrs.get("contenteditable") == "true"


def is_hidden(node: DomNode) -> bool:
    attrs = node.attrs
    if attrs.get("aria-hidden") == "true":
        return True
    if "hidden" in attrs:
        return True
    style = attrs.get("style", "").replace(" ", "").lower()
    if "display:none" in style or "visibility:hidden" in style:
        return True
    return attrs.get("type", "").lower() == "hidden"


def _rendered_text(node: DomNode) -> str:
    parts = list(node.texts)
    for child in node.children:
        if child.tag not in DISCARD_TAGS and not is_hidden(child):
            parts.append(_rendered_text(child))
    return " ".join(p for p in parts if p)


def _visible_text(node: DomNode, max_length: int) -> str:
    text = " ".join(node.texts).strip()
    if not text:
        text = _rendered_text(node).strip()
    if not text:
        return ""
    text = _WS_RE.sub(" ", text)
    return text[:max_length] + "..." if len(text) > max_length else text


@dataclass
class _SkeletonNode:
    tag: str
    attrs: dict[str, str]
    text: str
    children: list["_SkeletonNode"]


def _extract(node: DomNode, max_length: int, counter: list[int]) -> _SkeletonNode | None:
    if node.tag in DISCARD_TAGS or is_hidden(node):
        return None

    children = []
    for child in node.children:
        extracted = _extract(child, max_length, counter)
        if extracted is not None:
            children.append(extracted)

    interactive = is_interactive(node)
    if not interactive and not children:
        return None

    attrs: dict[str, str] = {}
    text = ""
    if interactive:
        counter[0] += 1
        attrs = {name: node.attrs[name] for name in KEEP_ATTRS if name in node.attrs}
        text = _visible_text(node, max_length)
    return _SkeletonNode(tag=node.tag, attrs=attrs, text=text, children=children)


def _render(node: _SkeletonNode, indent: int = 0) -> str:
    pad = "  " * indent
    attr_str = "".join(f' {name}="{escape(value, quote=True)}"' for name, value in node.attrs.items())
    if node.tag in SELF_CLOSING_OUTPUT:
        return f"{pad}<{node.tag}{attr_str} />\n"
    if node.children:
        inner = "".join(_render(child, indent + 1) for child in node.children)
        return f"{pad}<{node.tag}{attr_str}>\n{inner}{pad}</{node.tag}>\n"
    content = escape(node.text, quote=True) if node.text else ""
    return f"{pad}<{node.tag}{attr_str}>{content}</{node.tag}>\n"


def skeletonize(dom: str, max_text_length: int = DEFAULT_MAX_TEXT_LENGTH) -> SkeletonResult:
    """Extract the interactive skeleton of an HTML document.

    Args:
        dom: Full HTML string.
        max_text_length: Max direct text kept per interactive element.

    Returns:
        SkeletonResult with the skeleton HTML and size metrics.
    """
    original_size = len(dom or "")
    root = parse_dom(dom)
    start = root.find("body") or root

    counter = [0]
    if start is root:
        parts = [_extract(child, max_text_length, counter) for child in root.children]
        skeleton = "".join(_render(part) for part in parts if part is not None)
    else:
        extracted = _extract(start, max_text_length, counter)
        skeleton = _render(extracted) if extracted is not None else ""

    skeleton_size = len(skeleton)
    result = SkeletonResult(
        skeleton=skeleton,
        element_count=counter[0],
        original_size=original_size,
        skeleton_size=skeleton_size,
        compression_ratio=(skeleton_size / original_size) if original_size else 0.0,
    )
    logger.debug(
        "Skeleton extracted: %d elements, %d -> %d chars (ratio %.3f)",
        result.element_count, original_size, skeleton_size, result.compression_ratio,
    )
    return result


def normalize(dom: str) -> str:
    """Alias of :func:`clean_dom` used by the engine pipeline."""
    return clean_dom(dom)
