"""Tree equivalence between a pull request and its local commit.

Landing is only safe when squash-merging the pull request into trunk produces
exactly the tree that cherry-picking the local commit onto trunk would. If
they differ, either the reviewer never saw some of the local content, or the
pull request carries changes that are not in the local commit.
"""

from __future__ import annotations

from dataclasses import dataclass

from prstack_core.errors import CherryPickConflict, TreeMismatch
from prstack_core.ports.base import RepositoryPort


@dataclass(frozen=True)
class Equivalence:
    merged_tree: str  # T1: trunk with the pull request merged in
    picked_tree: str  # T2: trunk with the local commit cherry-picked

    @property
    def holds(self) -> bool:
        return self.merged_tree == self.picked_tree


def compute_equivalence(repo: RepositoryPort, commit: str, request_head: str, trunk_tip: str) -> Equivalence:
    """Compute both trees. Raises CherryPickConflict or TreeMismatch on conflicts."""
    picked = repo.cherry_pick(commit, trunk_tip)
    if not picked.clean:
        raise CherryPickConflict(commit, trunk_tip, list(picked.conflicts))

    merged = repo.merge_trees(trunk_tip, request_head)
    if not merged.clean:
        raise TreeMismatch(
            picked.tree,
            None,
            f"the pull request head {request_head[:8]} does not merge cleanly into trunk "
            f"({', '.join(merged.conflicts)}); rebase onto trunk and run 'prstack diff' before landing",
        )
    return Equivalence(merged_tree=merged.tree, picked_tree=picked.tree)


def verify_equivalence(repo: RepositoryPort, commit: str, request_head: str, trunk_tip: str) -> Equivalence:
    """Like :func:`compute_equivalence` but raises TreeMismatch unless T1 == T2."""
    equivalence = compute_equivalence(repo, commit, request_head, trunk_tip)
    if not equivalence.holds:
        raise TreeMismatch(expected_tree=equivalence.picked_tree, actual_tree=equivalence.merged_tree)
    return equivalence
