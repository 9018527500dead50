from __future__ import annotations

from typing import List

from ..models import CodexEntry
from ..store import ProjectStore


class CodexMergeError(RuntimeError):
    """Raised when two codex entries cannot be merged."""


def merge_codex_entries(store: ProjectStore, project_id: str, keep_id: str, merge_id: str) -> CodexEntry:
    """Fold ``merge_id`` into ``keep_id`` and delete it.

    The merged entry's name and aliases become aliases of the kept entry.
    Tags are unioned, attributes are combined with the kept entry winning on
    conflicts, and descriptions are appended.
    """

    if keep_id == merge_id:
        raise CodexMergeError("Choose two different entries to merge.")

    keep = store.get(CodexEntry, keep_id)
    merge = store.get(CodexEntry, merge_id)
    if keep is None or merge is None or keep.project_id != project_id or merge.project_id != project_id:
        raise CodexMergeError("Both entries must belong to this project.")
    if keep.type != merge.type:
        raise CodexMergeError(f"Cannot merge a {merge.type} into a {keep.type}.")

    with store.transaction():
        aliases: List[str] = list(keep.aliases or [])
        for alias in [merge.name, *(merge.aliases or [])]:
            if alias and alias.lower() != keep.name.lower() and alias not in aliases:
                aliases.append(alias)
        keep.aliases = aliases

        keep.tags = list(dict.fromkeys([*(keep.tags or []), *(merge.tags or [])]))
        keep.attributes = {**(merge.attributes or {}), **(keep.attributes or {})}
        keep.relationships = [*(keep.relationships or []), *(merge.relationships or [])]

        descriptions = [text for text in (keep.description, merge.description) if text]
        keep.description = "\n\n".join(dict.fromkeys(descriptions))

        store.delete(CodexEntry, merge_id)

    return keep
