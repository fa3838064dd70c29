"""Assemble detected elements into an outline tree."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .models import StructuralElement, StructureNode

ROOT_ID = "node_root"
SECTION_TITLE_CHARS = 80
PATH_SEPARATOR = " → "


@dataclass(slots=True)
class _OpenNode:
    id: str
    type: str
    level: int
    title: str
    section_path: tuple[str, ...]
    page_start: int
    page_end: int
    numbering: Optional[str] = None
    texts: List[str] = field(default_factory=list)
    children: List["_OpenNode"] = field(default_factory=list)


def node_type_for_rank(rank: int) -> str:
    if rank <= 1:
        return "part"
    if rank == 2:
        return "section"
    return "subsection"


def _short_title(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip()


def build_structure(
    elements: Sequence[StructuralElement], *, title_chars: int = SECTION_TITLE_CHARS
) -> StructureNode:
    """Build the outline rooted at a ``document`` node.

    A heading ranked deeper than the open node becomes its child; a heading of
    the same or shallower rank first closes open nodes down to that rank. Body
    text is appended to whichever node was opened most recently.
    """

    first_page = elements[0].page_number if elements else 0
    root = _OpenNode(
        id=ROOT_ID,
        type="document",
        level=0,
        title="",
        section_path=(),
        page_start=first_page,
        page_end=first_page,
    )
    stack: List[_OpenNode] = [root]

    for index, element in enumerate(elements):
        if element.is_heading:
            rank = max(1, element.level)
            while len(stack) > 1 and stack[-1].level >= rank:
                stack.pop()
            parent = stack[-1]
            node = _OpenNode(
                id=f"node_{index}",
                type=node_type_for_rank(rank),
                level=rank,
                title=element.text.strip(),
                section_path=parent.section_path + (_short_title(element.text, title_chars),),
                page_start=element.page_number,
                page_end=element.page_number,
                numbering=element.numbering,
            )
            parent.children.append(node)
            stack.append(node)
            continue

        current = stack[-1]
        if element.text.strip():
            current.texts.append(element.text.strip())
            current.page_end = max(current.page_end, element.page_number)

    return _freeze(root)


def _freeze(node: _OpenNode) -> StructureNode:
    children = tuple(_freeze(child) for child in node.children)
    page_end = max([node.page_end, *(child.page_end for child in children)])
    return StructureNode(
        id=node.id,
        type=node.type,
        level=node.level,
        title=node.title,
        text="\n\n".join(node.texts),
        section_path=node.section_path,
        page_start=node.page_start,
        page_end=page_end,
        numbering=node.numbering,
        children=children,
    )


def flatten_structure(root: StructureNode) -> List[StructureNode]:
    return list(root.walk())


def section_path_string(section_path: Sequence[str]) -> str:
    return PATH_SEPARATOR.join(section_path)


__all__ = [
    "PATH_SEPARATOR",
    "ROOT_ID",
    "build_structure",
    "flatten_structure",
    "node_type_for_rank",
    "section_path_string",
]
