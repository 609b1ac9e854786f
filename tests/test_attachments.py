"""Tests for the attachment list and its body links."""

from pathlib import Path

import pytest

from brouillon.compose.attachments import AttachmentTree, release_body
from brouillon.compose.errors import (
    AttachmentBoundaryError,
    AttachmentPinnedError,
    AttachmentPositionError,
    CannotDeleteLastAttachmentError,
    InsufficientTaggedItemsError,
    TreeConsistencyError,
)
from brouillon.compose.models import AttachmentNode, BodyPart, Disposition, MessageSummary


def part(name: str, **kwargs) -> BodyPart:
    return BodyPart(d_filename=name, **kwargs)


def build(*names: str) -> AttachmentTree:
    tree = AttachmentTree()
    for name in names:
        tree.add(AttachmentNode(body=part(name)))
    return tree


def order(tree: AttachmentTree) -> list[str]:
    return [node.body.d_filename for node in tree]


class TestFromBody:
    """Tests for building the list from a body tree."""

    def test_flat_chain(self):
        first, second = part("a"), part("b")
        first.next = second

        tree = AttachmentTree.from_body(first)

        assert order(tree) == ["a", "b"]
        assert tree.root is first

    def test_containers_are_flattened(self):
        """Children of a multipart take its place, tagged with its type."""
        text, html = part("text"), part("html")
        text.next = html
        alternative = BodyPart(type="multipart", subtype="alternative", parts=text)
        picture = part("picture")
        alternative.next = picture

        tree = AttachmentTree.from_body(alternative)

        assert order(tree) == ["text", "html", "picture"]
        assert [node.parent_type for node in tree] == ["multipart", "multipart", None]
        assert all(node.level == 0 for node in tree)

    def test_encrypted_part_is_opaque(self):
        inner = part("inner")
        encrypted = BodyPart(type="multipart", subtype="encrypted", parts=inner)

        tree = AttachmentTree.from_body(encrypted)

        assert len(tree) == 1
        assert tree.root is encrypted

    def test_empty(self):
        tree = AttachmentTree.from_body(None)

        assert len(tree) == 0
        assert tree.root is None


class TestAdd:
    """Tests for appending attachments."""

    def test_numbers_and_links(self):
        tree = build("a", "b", "c")

        assert [node.num for node in tree] == [1, 2, 3]
        assert tree.chain() == [node.body for node in tree]
        assert tree.visible == [0, 1, 2]

    def test_joins_level_of_last_node(self):
        """An attachment added after a group member joins the group."""
        tree = build("main", "a", "b")
        tree.group("alternative", [1, 2])

        index = tree.add(AttachmentNode(body=part("c")))

        assert index == 4
        assert tree[index].level == 1
        assert [child.d_filename for child in tree[1].body.children()] == ["a", "b", "c"]
        tree.verify()

    def test_insert_at(self):
        tree = build("a", "c")

        tree.insert_at(AttachmentNode(body=part("b")), 1)

        assert order(tree) == ["a", "b", "c"]
        assert tree.chain()[1].d_filename == "b"

    def test_insert_out_of_range(self):
        with pytest.raises(IndexError):
            build("a").insert_at(AttachmentNode(body=part("b")), 5)


class TestDelete:
    """Tests for removing attachments."""

    def test_delete_middle(self):
        tree = build("a", "b", "c")

        removed = tree.delete(1)

        assert [node.body.d_filename for node in removed] == ["b"]
        assert order(tree) == ["a", "c"]
        assert tree.chain() == [tree[0].body, tree[1].body]

    def test_only_attachment(self):
        tree = build("a")
        tree[0].tagged = True

        with pytest.raises(CannotDeleteLastAttachmentError):
            tree.delete(0)
        assert not tree[0].tagged

    def test_root_needs_permission(self):
        tree = build("a", "b")

        with pytest.raises(AttachmentPinnedError):
            tree.delete(0)

        tree.delete(0, allow_root=True)
        assert order(tree) == ["b"]

    def test_group_removed_with_children(self):
        tree = build("main", "a", "b", "c")
        tree.group("alternative", [1, 2])

        removed = tree.delete(1)

        assert len(removed) == 3
        assert order(tree) == ["main", "c"]
        tree.verify()

    def test_owned_file_removed(self, tmp_path: Path):
        scratch = tmp_path / "scratch.txt"
        scratch.write_text("x")
        tree = build("main")
        tree.add(AttachmentNode(body=part("scratch", filename=str(scratch), unlink=True)))

        tree.delete(1)

        assert not scratch.exists()

    def test_unowned_file_kept(self, tmp_path: Path):
        """A user's own file survives even when marked for unlinking."""
        mine = tmp_path / "mine.txt"
        mine.write_text("x")
        tree = build("main")
        body = part("mine", filename=str(mine), unlink=True)
        tree.add(AttachmentNode(body=body, unowned=True))

        tree.delete(1)

        assert mine.exists()
        assert not body.unlink


class TestSwap:
    """Tests for exchanging neighbours."""

    def test_swap(self):
        tree = build("main", "a", "b")

        assert tree.swap_adjacent(1) == 2
        assert order(tree) == ["main", "b", "a"]
        assert tree.chain() == [node.body for node in tree]

    def test_swap_moves_children(self):
        tree = build("main", "a", "b", "c")
        tree.group("alternative", [1, 2])

        new_index = tree.swap_adjacent(1)

        assert order(tree) == ["main", "c", None, "a", "b"]
        assert new_index == 2
        tree.verify()

    def test_root_is_pinned(self):
        with pytest.raises(AttachmentPinnedError):
            build("main", "a").swap_adjacent(0)

    def test_last_node(self):
        with pytest.raises(AttachmentPositionError):
            build("main", "a").swap_adjacent(1)

    def test_leaving_group_refused(self):
        """The last member of a group can't be swapped past its parent."""
        tree = build("main", "a", "b")
        tree.group("alternative", [1, 2])
        tree.insert_at(AttachmentNode(body=part("c"), level=0), 4)

        with pytest.raises(AttachmentBoundaryError):
            tree.swap_adjacent(3)

    def test_previous_sibling(self):
        tree = build("main", "a", "b", "c")
        tree.group("alternative", [2, 3])

        assert tree.previous_sibling(2) == 1
        assert tree.previous_sibling(3) is None
        assert tree.previous_sibling(4) == 3
        assert tree.next_sibling(1) == 2
        assert tree.parent_index(4) == 2


class TestGroup:
    """Tests for wrapping attachments in a container."""

    def test_group_at_first_member(self):
        tree = build("main", "a", "b")
        tree[1].tagged = tree[2].tagged = True

        index = tree.group("alternative", [1, 2])

        assert index == 1
        container = tree[1]
        assert container.body.content_type == "multipart/alternative"
        assert container.level == 0
        assert [node.level for node in tree] == [0, 0, 1, 1]
        assert tree.chain() == [tree.root, container.body]
        assert [child.d_filename for child in container.body.children()] == ["a", "b"]
        assert not tree[2].tagged and not tree[3].tagged
        assert tree[2].body.disposition is Disposition.INLINE
        assert tree[2].parent_type == "multipart"
        tree.verify()

    def test_non_adjacent_members(self):
        """Members are gathered behind the container in their original order."""
        tree = build("main", "a", "b", "c")

        tree.group("multilingual", [1, 3])

        assert order(tree) == ["main", None, "a", "c", "b"]
        assert [node.level for node in tree] == [0, 0, 1, 1, 0]
        assert tree[1].body.subtype == "multilingual"
        tree.verify()

    def test_description_names_first_member(self):
        tree = build("main", "a", "b")
        tree[1].body.description = "Plain text"

        tree.group("alternative", [1, 2])

        assert tree[1].body.description == 'Alternatives for "Plain text"'

    def test_description_fallback(self):
        tree = build("main", "a", "b")

        tree.group("multilingual", [1, 2])

        assert tree[1].body.description == "unknown multilingual group"

    def test_boundary_generated(self):
        tree = build("main", "a", "b")

        tree.group("alternative", [1, 2])

        boundary = tree[1].body.parameters["boundary"]
        assert len(boundary) == 16
        assert boundary.isalnum()

    def test_needs_two_members(self):
        with pytest.raises(InsufficientTaggedItemsError):
            build("main", "a").group("alternative", [1])

    def test_members_must_share_parent(self):
        tree = build("main", "a", "b", "c")
        tree.group("alternative", [1, 2])

        with pytest.raises(AttachmentBoundaryError):
            tree.group("alternative", [2, 4])


class TestCollapse:
    """Tests for hiding group members."""

    def test_collapse_and_expand(self):
        tree = build("main", "a", "b")
        tree.group("alternative", [1, 2])

        assert tree.toggle_collapse(1)
        assert tree.visible == [0, 1]
        assert tree.real_index(1) == 1
        assert tree.visible_index(2) is None

        assert tree.toggle_collapse(1)
        assert tree.visible == [0, 1, 2, 3]

    def test_leaf_cannot_collapse(self):
        tree = build("main", "a")

        assert not tree.toggle_collapse(1)
        assert tree.visible == [0, 1]


class TestRelease:
    """Tests for releasing the list."""

    def test_release_empties(self, tmp_path: Path):
        scratch = tmp_path / "scratch.txt"
        scratch.write_text("x")
        tree = build("main")
        tree.add(AttachmentNode(body=part("scratch", filename=str(scratch), unlink=True)))

        tree.release()

        assert len(tree) == 0
        assert tree.visible == []
        assert not scratch.exists()

    def test_attached_message_keeps_parts(self):
        """An attached message's parts belong to the message."""
        inner = part("inner")
        body = BodyPart(
            type="message",
            subtype="rfc822",
            parts=inner,
            email=MessageSummary(file="m", date=None, from_addr=""),
        )

        release_body(body)

        assert body.parts is inner

    def test_missing_file_ignored(self, tmp_path: Path):
        body = part("gone", filename=str(tmp_path / "gone"), unlink=True)

        release_body(body)


class TestVerify:
    """Tests for the consistency check."""

    def test_broken_chain(self):
        tree = build("a", "b")
        tree[0].body.next = None

        with pytest.raises(TreeConsistencyError):
            tree.verify()

    def test_nested_under_leaf(self):
        tree = build("a", "b")
        tree.nodes[1].level = 1

        with pytest.raises(TreeConsistencyError):
            tree.verify()

    def test_holds_across_mixed_changes(self):
        """Links stay consistent through a run of nested edits."""
        tree = build("body", "a", "b", "c", "d")

        tree.insert_at(AttachmentNode(body=part("e")), 2)
        tree.verify()
        tree.group("alternative", [1, 2])
        tree.verify()
        tree.group("multilingual", [2, 3])
        tree.verify()
        tree.insert_at(AttachmentNode(body=part("f"), level=1), 5)
        tree.verify()

        assert tree.swap_adjacent(2) == 3
        tree.verify()
        assert tree.swap_adjacent(1) == 2
        tree.verify()
        assert [node.level for node in tree] == [0, 0, 0, 1, 1, 2, 2, 0, 0]

        tree.delete(4)
        tree.verify()
        tree.delete(0, allow_root=True)
        tree.verify()

        assert order(tree) == ["b", None, "f", "c", "d"]
        assert [node.level for node in tree] == [0, 0, 1, 0, 0]
        assert tree.chain() == [tree[0].body, tree[1].body, tree[3].body, tree[4].body]
        assert tree[1].body.parts is tree[2].body
        assert tree[2].body.next is None
