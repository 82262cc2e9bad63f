"""Shared Rich display functions for scanned trees.

Provides the tree renderer and the JSON conversion used by the scan and
show commands.
"""

from rich.markup import escape
from rich.tree import Tree

from treescan.tree.models import DirInfo, FileInfo, NodeKind, ReadState, printable_name
from treescan.utils.formatting import format_size


def node_size(node: FileInfo) -> int:
    """Size shown for a node: subtree total for directories, own size otherwise."""
    if isinstance(node, DirInfo):
        return node.totals.size
    return node.own_size


def _sorted_children(node: DirInfo) -> list[FileInfo]:
    # Largest first; the dot entry always comes last
    children = sorted(node.children, key=lambda c: (-node_size(c), c.name))
    if node.dot_entry is not None:
        children.append(node.dot_entry)
    return children


def _label(node: FileInfo, full_name: bool) -> str:
    name = escape(printable_name(node.path if full_name else node.name))
    size = f"[node.size]{format_size(node_size(node))}[/]"

    if node.kind is NodeKind.ERROR:
        return f"[node.error]{name}[/] [muted](unreadable)[/]"
    if node.kind is NodeKind.EXCLUDED:
        return f"[node.excluded]{name}[/] [muted](other filesystem)[/]"
    if not isinstance(node, DirInfo):
        return f"[node.file]{name}[/] {size}"

    totals = node.totals
    label = f"[node.dir]{name}[/] {size} [muted]({totals.items} items)[/]"
    if node.kind is NodeKind.DIRECTORY and node.read_state is not ReadState.FINISHED:
        label += f" [warning]{node.read_state.value}[/]"
    return label


def build_tree(node: FileInfo, max_depth: int) -> Tree:
    """Create a Rich tree for ``node`` and its descendants.

    Directories show their total size and item count; children are
    listed largest first, followed by the directory's ``<Files>`` group.

    Args:
        node: Root of the rendered subtree (a toplevel node or below).
        max_depth: Number of levels rendered below ``node``.

    Returns:
        Rich Tree ready to print.
    """
    tree = Tree(_label(node, full_name=True), guide_style="border")
    _add_children(tree, node, max_depth)
    return tree


def _add_children(branch: Tree, node: FileInfo, levels: int) -> None:
    if levels <= 0 or not isinstance(node, DirInfo):
        return
    for child in _sorted_children(node):
        sub = branch.add(_label(child, full_name=False))
        _add_children(sub, child, levels - 1)


def node_to_dict(node: FileInfo, max_depth: int) -> dict[str, object]:
    """Convert a subtree into JSON-serializable data.

    Args:
        node: Root of the converted subtree.
        max_depth: Number of levels included below ``node``.

    Returns:
        Nested dictionary with name, path, kind, totals and children.
    """
    data: dict[str, object] = {
        "name": printable_name(node.name),
        "path": printable_name(node.path),
        "kind": node.kind.value,
        "size": node_size(node),
    }
    if isinstance(node, DirInfo):
        totals = node.totals
        data["items"] = totals.items
        data["subdirs"] = totals.subdirs
        data["state"] = node.read_state.value
        if max_depth > 0:
            data["children"] = [
                node_to_dict(child, max_depth - 1) for child in _sorted_children(node)
            ]
    return data
