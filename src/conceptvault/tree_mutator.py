"""User edits to the navigation hierarchy.

Edits never reach the graph store. The hierarchy is immutable, so an edit
returns a new tree in which only the folders on the path from the root to the
target are copied; every other subtree is shared with the old tree.
"""

import logging
from dataclasses import replace
from typing import Callable, FrozenSet, Optional, Set, Tuple

from conceptvault.exceptions import NotFoundError, ValidationError
from conceptvault.models import Folder, Hierarchy

logger = logging.getLogger(__name__)


def _update_folder(items: tuple, folder_id: str,
                   change: Callable[[Folder], Folder]) -> Tuple[tuple, bool]:
    """Apply change to the folder with folder_id, copying only its ancestors.

    Returns the (possibly new) items and whether the folder was found. When it
    was not found the original tuple is returned as is.
    """
    for index, item in enumerate(items):
        if not isinstance(item, Folder):
            continue
        if item.id == folder_id:
            updated = change(item)
        else:
            children, found = _update_folder(item.children, folder_id, change)
            if not found:
                continue
            updated = replace(item, children=children)
        return items[:index] + (updated,) + items[index + 1:], True
    return items, False


def toggle_folder(tree: Hierarchy, folder_id: str) -> Hierarchy:
    """Flip the open state of a folder at any depth.

    Raises:
        NotFoundError: If no folder has this id
    """
    new_tree, found = _update_folder(tree, folder_id, lambda f: replace(f, is_open=not f.is_open))
    if not found:
        raise NotFoundError(f"Folder '{folder_id}' not found in hierarchy")
    return new_tree


def rename_folder(tree: Hierarchy, folder_id: str, new_name: str) -> Hierarchy:
    """Change the display name of a folder.

    Only the name changes. Nodes keep their category, so the folder still
    collects nodes filed under the original category.

    Raises:
        ValidationError: If the new name is blank
        NotFoundError: If no folder has this id
    """
    if not new_name or not new_name.strip():
        raise ValidationError("Folder name cannot be empty")
    new_tree, found = _update_folder(tree, folder_id, lambda f: replace(f, name=new_name))
    if not found:
        raise NotFoundError(f"Folder '{folder_id}' not found in hierarchy")
    return new_tree


class TreeMutator:
    """Applies structural edits and tracks which categories are hidden.

    Attributes:
        hidden_categories (FrozenSet[str]): Categories the rendering layer should hide
    """

    def __init__(self, hidden: Optional[Set[str]] = None):
        self._hidden: Set[str] = set(hidden or ())

    @property
    def hidden_categories(self) -> FrozenSet[str]:
        return frozenset(self._hidden)

    def is_hidden(self, category: str) -> bool:
        return category in self._hidden

    def toggle_folder(self, tree: Hierarchy, folder_id: str) -> Hierarchy:
        new_tree = toggle_folder(tree, folder_id)
        logger.debug(f"Toggled folder '{folder_id}'")
        return new_tree

    def rename_folder(self, tree: Hierarchy, folder_id: str, new_name: str) -> Hierarchy:
        new_tree = rename_folder(tree, folder_id, new_name)
        logger.info(f"Renamed folder '{folder_id}' to '{new_name}'")
        return new_tree

    def toggle_category_visibility(self, category: str) -> bool:
        """Hide a visible category or show a hidden one.

        Returns:
            bool: True if the category is hidden after the call
        """
        if category in self._hidden:
            self._hidden.remove(category)
            hidden = False
        else:
            self._hidden.add(category)
            hidden = True
        logger.debug(f"Category '{category}' hidden={hidden}")
        return hidden
