"""Reply-tree construction for a post's flat comment list.

``build_comment_tree`` turns the rows returned by the backend (each naming an
optional parent) into a forest of ``CommentNode`` objects.  It is pure and
cheap enough to run on every refresh: each call builds brand-new nodes.

Comments whose parent is not part of the collection (deleted, or filtered
out of the fetch) are promoted to roots so no content silently disappears.
The same holds for a comment naming itself, and for the earliest member of
a longer parent cycle.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

from kaen.models.comment import Comment, CommentNode


def build_comment_tree(flat_comments: Sequence[Comment]) -> list[CommentNode]:
    """Group *flat_comments* into a forest of root comments.

    Children keep the relative order of the input, so callers pass the
    collection sorted by ``created_at`` ascending.  Never raises.
    """
    nodes: dict[int, CommentNode] = {}
    for comment in flat_comments:
        nodes[comment.id] = CommentNode(**comment.model_dump(exclude={"children"}))

    roots: list[CommentNode] = []
    for comment in flat_comments:
        node = nodes[comment.id]
        parent_id = comment.parent_comment_id
        parent = nodes.get(parent_id) if parent_id is not None else None
        if parent is None or parent_id == comment.id:
            # Root, dangling parent, or self-reference
            roots.append(node)
        else:
            parent.children.append(node)

    # Comments caught in a parent cycle never hang below a root
    reached = {node.id for node in iter_nodes(roots)}
    if len(reached) < len(nodes):
        position = {comment.id: index for index, comment in enumerate(flat_comments)}
        for comment in flat_comments:
            if comment.id in reached:
                continue
            node = nodes[comment.id]
            parent = nodes[comment.parent_comment_id]
            parent.children = [child for child in parent.children if child is not node]
            roots.append(node)
            reached.update(n.id for n in iter_nodes([node]))
        roots.sort(key=lambda node: position[node.id])
    return roots


def iter_nodes(forest: Iterable[CommentNode]) -> Iterator[CommentNode]:
    """Yield every node of *forest*, depth-first in pre-order."""
    stack = list(reversed(list(forest)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def count_nodes(forest: Iterable[CommentNode]) -> int:
    """Return the number of comments across the whole forest."""
    return sum(1 for _ in iter_nodes(forest))
