"""Union-merge of the local blocked set with the remote list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


def dedupe(identities: Iterable[str]) -> list[str]:
    """Drop repeated identities, keeping first-seen order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for identity in identities:
        if identity not in seen:
            seen.add(identity)
            ordered.append(identity)
    return ordered


@dataclass(frozen=True)
class MergePlan:
    """What a reconciliation pass has to upload, download and persist."""

    to_upload: list[str] = field(default_factory=list)
    to_download: list[str] = field(default_factory=list)
    merged: list[str] = field(default_factory=list)


def plan_merge(
    local: Iterable[str],
    remote: Iterable[str],
    pending_unblocks: Iterable[str] = (),
) -> MergePlan:
    """Plan a monotonic-additive merge.

    ``merged`` always contains every local identity: remote absence is never
    taken as an unblock. Remote identities with an unconfirmed local unblock
    are not downloaded again.
    """
    local_list = dedupe(local)
    remote_list = dedupe(remote)
    local_set = set(local_list)
    remote_set = set(remote_list)
    unblocked = set(pending_unblocks)

    to_upload = [identity for identity in local_list if identity not in remote_set]
    to_download = [
        identity
        for identity in remote_list
        if identity not in local_set and identity not in unblocked
    ]
    return MergePlan(
        to_upload=to_upload,
        to_download=to_download,
        merged=[*local_list, *to_download],
    )
