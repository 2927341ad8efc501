"""Shot entities and the canonical global ordering.

The ordering (`shot_order`) is the single source of truth for both numbering
and page partitioning. All lookups by unknown id are silent no-ops so that UI
events racing with deletions never raise.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
import copy
from dataclasses import replace
from datetime import datetime
from types import MappingProxyType
from typing import Any
import uuid

from loguru import logger

from core.models import CONTENT_FIELDS, Shot
from core.repositories.observable import ObservableStore


def _new_id() -> str:
    return str(uuid.uuid4())


class ShotRepository(ObservableStore):
    """Owns shots and their canonical ordering."""

    def __init__(self, id_factory: Callable[[], str] | None = None) -> None:
        super().__init__()
        self._new_id = id_factory or _new_id
        self._shots: dict[str, Shot] = {}
        self._order: list[str] = []

    # ------------------------------------------------------------------ queries
    @property
    def shots(self) -> Mapping[str, Shot]:
        """Read-only view of shots keyed by id."""
        return MappingProxyType(self._shots)

    @property
    def shot_order(self) -> list[str]:
        """Copy of the canonical ordering."""
        return list(self._order)

    @property
    def count(self) -> int:
        return len(self._order)

    def get_shot(self, shot_id: str) -> Shot | None:
        return self._shots.get(shot_id)

    def get_shots(self, shot_ids: Iterable[str]) -> list[Shot]:
        """Return shots for `shot_ids`, skipping unknown ids."""
        return [self._shots[sid] for sid in shot_ids if sid in self._shots]

    def get_sub_group_shots(self, group_id: str) -> list[Shot]:
        """Members of `group_id` in canonical order."""
        return [self._shots[sid] for sid in self._group_members(group_id)]

    def get_global_shot_index(self, shot_id: str) -> int:
        """Index of `shot_id` in the ordering, or -1 when unknown."""
        try:
            return self._order.index(shot_id)
        except ValueError:
            return -1

    # ----------------------------------------------------------------- mutators
    def create_shot(self, **fields: Any) -> str:
        """Create a shot from content `fields` and append it to the ordering."""
        shot_id = self._new_id()
        shot = Shot(id=shot_id)
        self._merge_content(shot, fields)
        self._shots[shot_id] = shot
        self._order.append(shot_id)
        self.notify()
        return shot_id

    def delete_shot(self, shot_id: str) -> None:
        """Remove a shot; a group left with one member is dissolved."""
        shot = self._shots.pop(shot_id, None)
        if shot is None:
            return
        if shot_id in self._order:
            self._order.remove(shot_id)
        if shot.sub_shot_group_id:
            self._dissolve_if_singleton(shot.sub_shot_group_id)
        self.notify()

    def update_shot(self, shot_id: str, **fields: Any) -> None:
        """Merge content fields into a shot and bump `updated_at`."""
        shot = self._shots.get(shot_id)
        if shot is None:
            return
        self._merge_content(shot, fields)
        shot.updated_at = datetime.now()
        self.notify()

    def duplicate_shot(self, shot_id: str) -> str | None:
        """Copy a shot's content and insert the copy right after it.

        The copy joins the source's sub-shot group, if any.
        """
        source = self._shots.get(shot_id)
        if source is None:
            return None
        now = datetime.now()
        new_id = self._new_id()
        self._shots[new_id] = replace(source, id=new_id, number="", created_at=now, updated_at=now)
        self._insert_after(shot_id, new_id)
        self.notify()
        return new_id

    def clone_shots(self, shot_ids: Iterable[str], index: int) -> list[str]:
        """Insert copies of `shot_ids` as one block at `index`.

        Copied sub-shot groups get fresh group ids; a group only partly copied
        ends up as a singleton and is dissolved.
        """
        now = datetime.now()
        group_map: dict[str, str] = {}
        new_ids: list[str] = []
        for sid in shot_ids:
            source = self._shots.get(sid)
            if source is None:
                continue
            group_id = None
            if source.sub_shot_group_id:
                if source.sub_shot_group_id not in group_map:
                    group_map[source.sub_shot_group_id] = self._new_id()
                group_id = group_map[source.sub_shot_group_id]
            new_id = self._new_id()
            self._shots[new_id] = replace(
                source,
                id=new_id,
                number="",
                sub_shot_group_id=group_id,
                created_at=now,
                updated_at=now,
            )
            new_ids.append(new_id)
        if not new_ids:
            return new_ids

        index = max(0, min(index, len(self._order)))
        self._order[index:index] = new_ids
        for group_id in group_map.values():
            self._dissolve_if_singleton(group_id)
        self._gather_groups()
        self.notify()
        return new_ids

    def create_sub_shot(self, parent_id: str) -> str | None:
        """Create a shot right after `parent_id`, sharing (or starting) its group."""
        parent = self._shots.get(parent_id)
        if parent is None:
            return None
        group_id = parent.sub_shot_group_id or self._new_id()
        parent.sub_shot_group_id = group_id
        new_id = self._new_id()
        self._shots[new_id] = Shot(id=new_id, sub_shot_group_id=group_id)
        self._insert_after(parent_id, new_id)
        self.notify()
        return new_id

    def remove_from_sub_group(self, shot_id: str) -> None:
        """Detach a shot from its group.

        A shot taken out of the middle of its group is moved to directly after
        the group's last member so the remaining members stay contiguous.
        """
        shot = self._shots.get(shot_id)
        if shot is None or not shot.sub_shot_group_id:
            return
        group_id = shot.sub_shot_group_id
        members = self._group_members(group_id)
        shot.sub_shot_group_id = None
        pos = members.index(shot_id) if shot_id in members else -1
        if 0 < pos < len(members) - 1:
            self._order.remove(shot_id)
            self._order.insert(self._order.index(members[-1]) + 1, shot_id)
        self._dissolve_if_singleton(group_id)
        shot.updated_at = datetime.now()
        self.notify()

    def insert_into_sub_group(self, shot_id: str, target_group_id: str, insert_position: int) -> None:
        """Move a shot into `target_group_id` at `insert_position`.

        `insert_position` is an index into the ordering with the shot already
        removed; it is clamped into the target group's span.
        """
        shot = self._shots.get(shot_id)
        if shot is None:
            return
        others = [sid for sid in self._group_members(target_group_id) if sid != shot_id]
        if not others:
            logger.debug("Sub-group {} has no other members, insert ignored", target_group_id)
            return

        old_group = shot.sub_shot_group_id
        shot.sub_shot_group_id = target_group_id
        if old_group and old_group != target_group_id:
            self._dissolve_if_singleton(old_group)

        self._order.remove(shot_id)
        first = self._order.index(others[0])
        last = self._order.index(others[-1])
        self._order.insert(min(max(insert_position, first), last + 1), shot_id)
        shot.updated_at = datetime.now()
        self.notify()

    def set_shot_order(self, new_order: Iterable[str]) -> None:
        """Replace the canonical ordering.

        Unknown and duplicate ids are dropped, live shots missing from
        `new_order` are appended, and split groups are gathered.
        """
        self._order = self._sanitize_order(new_order)
        self._gather_groups()
        self.notify()

    def move_shot(self, shot_id: str, target_index: int) -> None:
        """Move a shot so that it ends up at `target_index`."""
        if shot_id not in self._shots:
            return
        current = self._order.index(shot_id)
        if target_index < 0 or target_index >= len(self._order) or current == target_index:
            return
        self._order.pop(current)
        self._order.insert(target_index, shot_id)

        group_id = self._shots[shot_id].sub_shot_group_id
        if group_id and not self._touches_group(target_index, group_id):
            self._shots[shot_id].sub_shot_group_id = None
            self._dissolve_if_singleton(group_id)
        self._gather_groups()
        self.notify()

    def move_shot_group(self, group_id: str, target_index: int) -> None:
        """Move every member of a group to `target_index`, keeping their order.

        Moving down lands the group's last member on `target_index`; moving up
        lands its first member there.
        """
        members = self._group_members(group_id)
        if not members or target_index < 0 or target_index >= len(self._order):
            return
        first = self._order.index(members[0])
        adjusted = target_index - len(members) + 1 if target_index > first else target_index
        member_set = set(members)
        rest = [sid for sid in self._order if sid not in member_set]
        adjusted = max(0, min(adjusted, len(rest)))
        self._order = rest[:adjusted] + members + rest[adjusted:]
        self._gather_groups()
        self.notify()

    # -------------------------------------------------------------- bulk state
    def restore(self, shots: Mapping[str, Shot], shot_order: Iterable[str]) -> None:
        """Replace all state, e.g. after loading a project."""
        self._shots = dict(shots)
        self._order = []
        self._order = self._sanitize_order(shot_order)
        self._gather_groups()
        for group_id in {s.sub_shot_group_id for s in self._shots.values() if s.sub_shot_group_id}:
            self._dissolve_if_singleton(group_id)
        self.notify()

    def snapshot(self) -> tuple[dict[str, Shot], list[str]]:
        """Deep copies of the shots and the ordering."""
        return copy.deepcopy(self._shots), list(self._order)

    # ---------------------------------------------------------------- internals
    def _merge_content(self, shot: Shot, fields: Mapping[str, Any]) -> None:
        ignored = sorted(k for k in fields if k not in CONTENT_FIELDS)
        if ignored:
            logger.warning("Ignoring non-content shot fields: {}", ignored)
        for key, value in fields.items():
            if key in CONTENT_FIELDS:
                setattr(shot, key, value)

    def _insert_after(self, anchor_id: str, new_id: str) -> None:
        if anchor_id in self._order:
            self._order.insert(self._order.index(anchor_id) + 1, new_id)
        else:
            self._order.append(new_id)

    def _group_members(self, group_id: str | None) -> list[str]:
        if not group_id:
            return []
        return [
            sid
            for sid in self._order
            if sid in self._shots and self._shots[sid].sub_shot_group_id == group_id
        ]

    def _group_of(self, index: int) -> str | None:
        if 0 <= index < len(self._order):
            shot = self._shots.get(self._order[index])
            return shot.sub_shot_group_id if shot else None
        return None

    def _touches_group(self, index: int, group_id: str) -> bool:
        return self._group_of(index - 1) == group_id or self._group_of(index + 1) == group_id

    def _dissolve_if_singleton(self, group_id: str) -> None:
        members = [s for s in self._shots.values() if s.sub_shot_group_id == group_id]
        if len(members) == 1:
            logger.debug("Dissolving sub-shot group {} (one member left)", group_id)
            members[0].sub_shot_group_id = None
            members[0].updated_at = datetime.now()

    def _sanitize_order(self, new_order: Iterable[str]) -> list[str]:
        seen: set[str] = set()
        cleaned: list[str] = []
        dropped = 0
        for sid in new_order:
            if sid in self._shots and sid not in seen:
                seen.add(sid)
                cleaned.append(sid)
            else:
                dropped += 1
        missing = [sid for sid in self._order if sid in self._shots and sid not in seen]
        seen.update(missing)
        missing += [sid for sid in self._shots if sid not in seen]
        if dropped or missing:
            logger.warning(
                "Shot order adjusted: {} unknown/duplicate ids dropped, {} missing ids appended",
                dropped,
                len(missing),
            )
        return cleaned + missing

    def _gather_groups(self) -> None:
        """Pull split group members together at the group's first position."""
        members_by_group: dict[str, list[str]] = {}
        for sid in self._order:
            group_id = self._shots[sid].sub_shot_group_id
            if group_id:
                members_by_group.setdefault(group_id, []).append(sid)

        gathered: list[str] = []
        emitted: set[str] = set()
        for sid in self._order:
            group_id = self._shots[sid].sub_shot_group_id
            if not group_id:
                gathered.append(sid)
            elif group_id not in emitted:
                emitted.add(group_id)
                gathered.extend(members_by_group[group_id])
        if gathered != self._order:
            logger.debug("Gathered non-contiguous sub-shot groups")
            self._order = gathered
