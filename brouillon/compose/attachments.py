"""Ordered attachment list of the compose screen.

The list of AttachmentNode objects is the single source of truth for the
order and nesting of body parts. Each node has a level (0 = top level);
a container's children follow it directly at level + 1.

The body tree that is eventually sent (BodyPart.next / BodyPart.parts) is
derived from that list: after every structural change the links are
recomputed from the node levels, so the body chain always visits parts in
list order.

Usage:
    tree = AttachmentTree.from_body(email.body)
    tree.add(AttachmentNode(body=make_file_attach("notes.txt"), unowned=True))
    tree.group("alternative", [0, 1])
    email.body = tree.root
"""

import logging
import os
from collections.abc import Iterator

from .errors import (
    AttachmentBoundaryError,
    AttachmentPinnedError,
    AttachmentPositionError,
    CannotDeleteLastAttachmentError,
    InsufficientTaggedItemsError,
    TreeConsistencyError,
)
from .mime import generate_boundary
from .models import AttachmentNode, BodyPart, Disposition

logger = logging.getLogger(__name__)

GROUP_KINDS = {
    # kind -> (description template, fallback description, guard name)
    "alternative": (
        'Alternatives for "{}"',
        "unknown alternative group",
        "alternatives",
    ),
    "multilingual": (
        'Multilingual part for "{}"',
        "unknown multilingual group",
        "multilingual",
    ),
}


def release_body(body: BodyPart) -> None:
    """Release a body part that left the attachment list.

    The body is unlinked from its siblings. Its children are dropped unless
    it is an attached message, whose parts are shared with the message.
    The backing file is removed when the body is marked for unlinking.
    """
    body.next = None
    if body.email is None:
        body.parts = None

    if body.unlink and body.filename:
        try:
            os.unlink(body.filename)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Can't remove %s: %s", body.filename, e)


class AttachmentTree:
    """Ordered, tree-structured list of the message's body parts.

    Example:
        tree = AttachmentTree()
        tree.add(AttachmentNode(body=main_text))
        tree.add(AttachmentNode(body=picture))
        tree.chain()  # [main_text, picture]
    """

    def __init__(self, nodes: list[AttachmentNode] | None = None):
        self.nodes: list[AttachmentNode] = list(nodes or [])
        # Visible position -> index into self.nodes
        self.visible: list[int] = []
        self._refresh()

    @classmethod
    def from_body(cls, body: BodyPart | None) -> "AttachmentTree":
        """Build the list from an existing body tree.

        Multipart containers are flattened: their children are listed in
        place of the container, at the container's level, with the
        container's type as parent type. multipart/encrypted is listed as a
        single opaque part.
        """
        nodes: list[AttachmentNode] = []
        stack: list[tuple[BodyPart, str | None]] = []

        def push_chain(first: BodyPart | None, parent_type: str | None) -> None:
            chain = []
            part = first
            while part is not None:
                chain.append(part)
                part = part.next
            for part in reversed(chain):
                stack.append((part, parent_type))

        push_chain(body, None)
        while stack:
            part, parent_type = stack.pop()
            if part.is_group and part.parts is not None:
                push_chain(part.parts, part.type)
                continue
            nodes.append(AttachmentNode(body=part, level=0, parent_type=parent_type))

        logger.debug("Flattened body tree into %d attachments", len(nodes))
        return cls(nodes)

    # --- Read access ---

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index: int) -> AttachmentNode:
        return self.nodes[index]

    def __iter__(self) -> Iterator[AttachmentNode]:
        return iter(self.nodes)

    @property
    def root(self) -> BodyPart | None:
        """Body of the fundamental part, the head of the body chain."""
        return self.nodes[0].body if self.nodes else None

    def chain(self) -> list[BodyPart]:
        """Bodies reachable from the root through `next` links."""
        bodies = []
        part = self.root
        while part is not None:
            bodies.append(part)
            part = part.next
        return bodies

    def tagged_indices(self) -> list[int]:
        return [i for i, node in enumerate(self.nodes) if node.tagged]

    def real_index(self, visible_index: int) -> int:
        """Map a visible position to an index into the node list."""
        return self.visible[visible_index]

    def visible_index(self, index: int) -> int | None:
        """Map a node index to its visible position, None when hidden."""
        try:
            return self.visible.index(index)
        except ValueError:
            return None

    def subtree_end(self, index: int) -> int:
        """Index just past the node and all of its descendants."""
        level = self.nodes[index].level
        end = index + 1
        while end < len(self.nodes) and self.nodes[end].level > level:
            end += 1
        return end

    def parent_index(self, index: int) -> int | None:
        """Index of the enclosing container, None at top level."""
        level = self.nodes[index].level
        for i in range(index - 1, -1, -1):
            if self.nodes[i].level < level:
                return i
        return None

    def next_sibling(self, index: int) -> int | None:
        end = self.subtree_end(index)
        if end < len(self.nodes) and self.nodes[end].level == self.nodes[index].level:
            return end
        return None

    def previous_sibling(self, index: int) -> int | None:
        """Index of the sibling directly before `index`, None if it's first."""
        level = self.nodes[index].level
        for i in range(index - 1, -1, -1):
            if self.nodes[i].level == level:
                return i
            if self.nodes[i].level < level:
                return None
        return None

    # --- Structural changes ---

    def add(self, node: AttachmentNode) -> int:
        """Append a node at the end of the list.

        The node joins the level of the current last node, so an attachment
        added while the last part sits inside a group joins that group.

        Returns:
            The index of the new node.
        """
        if self.nodes:
            node.level = self.nodes[-1].level
            if node.parent_type is None:
                node.parent_type = self.nodes[-1].parent_type
        else:
            node.level = 0
        self.nodes.append(node)
        self._refresh()
        return len(self.nodes) - 1

    def insert_at(self, node: AttachmentNode, index: int) -> int:
        """Insert a node before `index`.

        The caller sets the node's level to match its intended siblings.
        """
        if index < 0 or index > len(self.nodes):
            raise IndexError(f"Insert position out of range: {index}")
        self.nodes.insert(index, node)
        self._refresh()
        return index

    def delete(self, index: int, *, allow_root: bool = False) -> list[AttachmentNode]:
        """Remove a node together with any children it contains.

        Removed bodies are released. Unowned nodes never have their backing
        file removed.

        Args:
            index: Index of the node to remove.
            allow_root: Permit removing the fundamental part while other
                parts remain (the caller has confirmed it).

        Returns:
            The removed nodes.

        Raises:
            CannotDeleteLastAttachmentError: The node is the only attachment.
            AttachmentPinnedError: Index 0 without allow_root.
        """
        end = self.subtree_end(index)
        if len(self.nodes) == 1 or (index == 0 and end == len(self.nodes)):
            self.nodes[index].tagged = False
            raise CannotDeleteLastAttachmentError()
        if index == 0 and not allow_root:
            raise AttachmentPinnedError("The fundamental part can't be deleted")

        removed = self.nodes[index:end]
        del self.nodes[index:end]

        for node in removed:
            if node.unowned:
                node.body.unlink = False
            release_body(node.body)

        self._refresh()
        logger.debug("Deleted %d attachment(s) at index %d", len(removed), index)
        return removed

    def swap_adjacent(self, index: int) -> int:
        """Exchange the node at `index` with the sibling that follows it.

        Both nodes move together with their children.

        Returns:
            The new index of the node that was at `index`.

        Raises:
            AttachmentPinnedError: Either node is the fundamental part.
            AttachmentPositionError: No node follows.
            AttachmentBoundaryError: The following node isn't a sibling.
        """
        if index == 0:
            raise AttachmentPinnedError()

        end = self.subtree_end(index)
        if end >= len(self.nodes):
            raise AttachmentPositionError("Attachment is already at bottom")
        if self.nodes[end].level != self.nodes[index].level:
            raise AttachmentBoundaryError(
                "Attachments can only be moved within their group"
            )

        follower_end = self.subtree_end(end)
        first = self.nodes[index:end]
        second = self.nodes[end:follower_end]
        self.nodes[index:follower_end] = second + first

        self._refresh()
        return index + len(second)

    def group(self, kind: str, indices: list[int]) -> int:
        """Wrap sibling attachments in a new multipart container.

        The container takes the position and level of the first member.
        Members (with their children) follow it in their original order,
        one level deeper, untagged and with inline disposition.

        Args:
            kind: "alternative" or "multilingual".
            indices: Indices of the members.

        Returns:
            The index of the new container.

        Raises:
            InsufficientTaggedItemsError: Fewer than two members.
            AttachmentBoundaryError: Members don't share a parent and level.
        """
        template, fallback, guard_name = GROUP_KINDS[kind]
        indices = sorted(set(indices))
        if len(indices) < 2:
            raise InsufficientTaggedItemsError(guard_name)

        first = indices[0]
        level = self.nodes[first].level
        parent = self.parent_index(first)
        for i in indices[1:]:
            if self.nodes[i].level != level or self.parent_index(i) != parent:
                raise AttachmentBoundaryError(
                    "Grouped attachments must belong to the same group"
                )

        members: list[AttachmentNode] = []
        for i in indices:
            members.extend(self.nodes[i : self.subtree_end(i)])
        moved = {id(node) for node in members}
        remaining = [node for node in self.nodes if id(node) not in moved]

        lead = self.nodes[first].body
        name = lead.description or lead.filename
        container = BodyPart(
            type="multipart",
            subtype=kind,
            disposition=Disposition.INLINE,
            parameters={"boundary": generate_boundary()},
            description=template.format(name) if name else fallback,
        )
        group_node = AttachmentNode(
            body=container, level=level, parent_type=self.nodes[first].parent_type
        )

        member_roots = {id(self.nodes[i]) for i in indices}
        for node in members:
            if id(node) in member_roots:
                node.tagged = False
                node.body.disposition = Disposition.INLINE
                node.parent_type = container.type
            node.level += 1

        # Nothing before the first member moved, so its index is unchanged
        self.nodes = remaining[:first] + [group_node] + members + remaining[first:]
        self._refresh()

        logger.debug("Grouped %d attachments as multipart/%s", len(indices), kind)
        return first

    def toggle_collapse(self, index: int) -> bool:
        """Collapse or expand a container's children in the visible list.

        Returns:
            False if the node has no children to hide.
        """
        node = self.nodes[index]
        if self.subtree_end(index) == index + 1:
            return False
        node.collapsed = not node.collapsed
        self._update_visible()
        return True

    def release(self) -> None:
        """Release every node, leaving the list empty."""
        for node in self.nodes:
            if node.unowned:
                node.body.unlink = False
            release_body(node.body)
        self.nodes = []
        self._refresh()

    # --- Consistency ---

    def verify(self) -> None:
        """Check that the body links match the node list.

        Raises:
            TreeConsistencyError: If the links and the list disagree.
        """
        if not self.nodes:
            return

        if self.nodes[0].level != 0:
            raise TreeConsistencyError("The fundamental part must be at level 0")

        seen: set[int] = set()
        for i, node in enumerate(self.nodes):
            if id(node.body) in seen:
                raise TreeConsistencyError(f"Attachment #{i + 1} is listed twice")
            seen.add(id(node.body))
            if i and node.level > self.nodes[i - 1].level:
                previous = self.nodes[i - 1]
                if node.level != previous.level + 1 or not previous.body.is_group:
                    raise TreeConsistencyError(
                        f"Attachment #{i + 1} is nested under a non-container"
                    )

        top = [node.body for node in self.nodes if node.level == 0]
        if not _same_bodies(self.chain(), top):
            raise TreeConsistencyError("Body chain doesn't match the attachment order")

        for i, node in enumerate(self.nodes):
            if not node.body.is_group or node.body.email is not None:
                continue
            expected = []
            j = i + 1
            while j < len(self.nodes) and self.nodes[j].level > node.level:
                if self.nodes[j].level == node.level + 1:
                    expected.append(self.nodes[j].body)
                j += 1
            if not _same_bodies(list(node.body.children()), expected):
                raise TreeConsistencyError(
                    f"Children of attachment #{i + 1} are out of order"
                )

    # --- Internals ---

    def _refresh(self) -> None:
        self._relink()
        for i, node in enumerate(self.nodes):
            node.num = i + 1
        self._update_visible()

    def _relink(self) -> None:
        """Recompute `next` and container `parts` links from the levels."""
        # Last body seen at each level within the current parent
        last: list[BodyPart | None] = []
        for node in self.nodes:
            body = node.body
            level = node.level
            body.next = None
            if body.is_group and body.email is None:
                body.parts = None

            del last[level + 1 :]
            while len(last) <= level:
                last.append(None)

            previous = last[level]
            if previous is not None:
                previous.next = body
            elif level > 0:
                parent = last[level - 1]
                if parent is not None and parent.is_group and parent.email is None:
                    parent.parts = body
            last[level] = body

    def _update_visible(self) -> None:
        self.visible = []
        hidden_below: int | None = None
        for i, node in enumerate(self.nodes):
            if hidden_below is not None:
                if node.level > hidden_below:
                    continue
                hidden_below = None
            self.visible.append(i)
            if node.collapsed:
                hidden_below = node.level


def _same_bodies(left: list[BodyPart], right: list[BodyPart]) -> bool:
    return len(left) == len(right) and all(a is b for a, b in zip(left, right))
