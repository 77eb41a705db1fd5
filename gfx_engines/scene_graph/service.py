"""Scene graph operations over the shared designer state.

Structural methods validate their inputs, mutate ``state.elements`` (and the
collections that hang off elements), mark the state dirty and push one
history entry. Invalid requests are logged and answered with ``None`` or
``False``; they never raise into the host.
"""
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from gfx_engines.common.errors import ValidationError
from gfx_engines.geometry.models import FitChild, Padding, Point, Rect, TextMeasurer, TextSpec
from gfx_engines.geometry.service import fit_to_content, to_absolute, to_relative, union_bounds
from gfx_engines.persistence.models import EntityKind
from gfx_engines.scene_graph.defaults import Z_STEP, defaults_for, pinned_z_index
from gfx_engines.scene_graph.models import Element, ElementType, GroupContent, TextContent
from gfx_engines.scene_graph.scheduler import DeferredTaskQueue

if TYPE_CHECKING:  # pragma: no cover
    from gfx_engines.designer.state import DesignerState
    from gfx_engines.history.service import HistoryManager

logger = logging.getLogger(__name__)

_UNCHANGED: Any = object()
_POSITION_PROPS = ("position_x", "position_y")


def _new_handle(prefix: str = "el") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class SceneGraphService:
    def __init__(
        self,
        state: "DesignerState",
        history: "HistoryManager",
        scheduler: Optional[DeferredTaskQueue] = None,
        measurer: Optional[TextMeasurer] = None,
    ):
        self.state = state
        self.history = history
        self.scheduler = scheduler or DeferredTaskQueue()
        self.measurer = measurer

    # --- helpers ---

    def _commit(self, description: str) -> None:
        self.state.mark_dirty()
        self.history.push(description)

    def _replace(self, updated: Element) -> None:
        elements = self.state.elements
        for idx, el in enumerate(elements):
            if el.id == updated.id:
                elements[idx] = updated
                return

    def _siblings(self, element: Element, include_self: bool = False) -> List[Element]:
        return [
            e for e in self.state.children_of(element.template_id, element.parent_element_id)
            if include_self or e.id != element.id
        ]

    def _next_sort_order(
        self, template_id: Optional[str], parent_id: Optional[str], pending: Iterable[Element] = ()
    ) -> int:
        """One past the highest sibling sort_order, counting elements not yet in state."""
        siblings = [*self.state.children_of(template_id, parent_id), *pending]
        orders = [e.sort_order for e in siblings if e.template_id == template_id and e.parent_element_id == parent_id]
        return max(orders) + 1 if orders else 0

    def _max_z(self, template_id: Optional[str]) -> Optional[int]:
        zs = [e.z_index for e in self.state.template_elements(template_id)]
        return max(zs) if zs else None

    def _subtree_ids(self, ids: Iterable[str]) -> List[str]:
        """Ids plus every descendant, in discovery order, without duplicates."""
        seen: List[str] = []
        stack = [i for i in ids if self.state.element(i) is not None]
        while stack:
            current = stack.pop(0)
            if current in seen:
                continue
            seen.append(current)
            stack.extend(e.id for e in self.state.elements if e.parent_element_id == current)
        return seen

    def descendant_ids(self, element_id: str) -> List[str]:
        return [i for i in self._subtree_ids([element_id]) if i != element_id]

    def absolute_origin(self, element_id: Optional[str]) -> Point:
        """Absolute canvas position of an element's origin (0,0 for the root)."""
        origin = Point()
        visited: Set[str] = set()
        current = self.state.element(element_id) if element_id else None
        while current is not None and current.id not in visited:
            visited.add(current.id)
            origin = to_absolute(Point(x=current.position_x, y=current.position_y), origin)
            current = self.state.element(current.parent_element_id) if current.parent_element_id else None
        return origin

    def paint_order(self, template_id: Optional[str], parent_id: Optional[str] = None) -> List[Element]:
        """Siblings bottom to top; equal z-indexes fall back to outline order."""
        return sorted(
            self.state.children_of(template_id, parent_id),
            key=lambda e: (e.z_index, e.sort_order),
        )

    def _outline_order(self, template_id: Optional[str], parent_id: Optional[str]) -> List[Element]:
        return sorted(self.state.children_of(template_id, parent_id), key=lambda e: e.sort_order)

    def _valid_parent(self, template_id: Optional[str], parent_id: Optional[str]) -> bool:
        if parent_id is None:
            return True
        parent = self.state.element(parent_id)
        return parent is not None and parent.template_id == template_id

    def _shift_keyframes(self, element_ids: Iterable[str], dx: float, dy: float) -> None:
        targets = set(element_ids)
        animation_ids = {a.id for a in self.state.animations if a.element_id in targets}
        for kf in self.state.keyframes:
            if kf.animation_id not in animation_ids:
                continue
            for prop, delta in zip(_POSITION_PROPS, (dx, dy)):
                value = kf.properties.get(prop)
                if _is_number(value):
                    kf.properties[prop] = value + delta

    def _relocate(self, element: Element, new_parent_id: Optional[str]) -> Element:
        """Re-parent keeping the on-screen position."""
        absolute = to_absolute(
            Point(x=element.position_x, y=element.position_y),
            self.absolute_origin(element.parent_element_id),
        )
        relative = to_relative(absolute, self.absolute_origin(new_parent_id))
        return element.model_copy(
            update={"parent_element_id": new_parent_id, "position_x": relative.x, "position_y": relative.y}
        )

    # --- creation ---

    def add_element(
        self,
        element_type: ElementType,
        position: Mapping[str, float],
        parent_id: Optional[str] = None,
    ) -> Optional[str]:
        state = self.state
        template_id = state.current_template_id
        if state.template(template_id) is None:
            logger.warning("add_element: no current template")
            return None
        if not self._valid_parent(template_id, parent_id):
            logger.warning("add_element: parent %s is not in template %s", parent_id, template_id)
            return None

        element_type = ElementType(element_type)
        defaults = defaults_for(element_type)
        element = Element(
            template_id=template_id,
            name=defaults.name,
            element_id=_new_handle(),
            element_type=element_type,
            parent_element_id=parent_id,
            sort_order=self._next_sort_order(template_id, parent_id),
            z_index=pinned_z_index(element_type, self._max_z(template_id)),
            position_x=float(position.get("x", 0)),
            position_y=float(position.get("y", 0)),
            width=defaults.width,
            height=defaults.height,
            content=defaults.content(),
            styles=dict(defaults.styles),
        )
        state.elements.append(element)
        state.selected_element_ids = [element.id]
        self._schedule_fit(parent_id)
        self._commit(f"Add {element_type.value}")
        return element.id

    def add_element_from_data(self, data: Mapping[str, Any]) -> Optional[str]:
        """Import path for externally generated elements."""
        state = self.state
        template_id = data.get("template_id") or state.current_template_id
        if template_id is None and state.templates:
            template_id = state.templates[0].id
        if template_id is None:
            logger.warning("add_element_from_data: no template available")
            return None
        parent_id = data.get("parent_element_id")
        if not self._valid_parent(template_id, parent_id):
            logger.warning("add_element_from_data: parent %s is not in template %s", parent_id, template_id)
            return None

        element_type = ElementType(data.get("element_type") or ElementType.SHAPE)
        z_index = data.get("z_index")
        payload: Dict[str, Any] = {
            "position_x": 100,
            "position_y": 100,
            "width": 200,
            "height": 100,
            "name": "AI Element",
            "content": defaults_for(element_type).content().model_dump(),
            **{k: v for k, v in data.items() if v is not None},
            "id": str(uuid.uuid4()),
            "template_id": template_id,
            "element_id": _new_handle(),
            "element_type": element_type,
            "sort_order": self._next_sort_order(template_id, parent_id),
            "z_index": z_index if z_index is not None else pinned_z_index(element_type, self._max_z(template_id)),
            "visible": True,
            "locked": False,
        }
        try:
            element = Element.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid element payload: {exc.error_count()} error(s)") from exc

        state.elements.append(element)
        state.selected_element_ids = [element.id]
        self._schedule_fit(parent_id)
        self._commit(f"AI Create: {element.name}")
        return element.id

    def duplicate_elements(self, ids: List[str], offset: float = 20) -> List[str]:
        """Copy each selected subtree; returns the ids of the new top-level copies."""
        state = self.state
        requested = [i for i in dict.fromkeys(ids) if state.element(i) is not None]
        subtree = set(self._subtree_ids(requested))
        # Skip ids already covered by a selected ancestor.
        roots = [i for i in requested if not (set(self.ancestor_ids(i)) & set(requested))]
        if not roots:
            return []

        id_map: Dict[str, str] = {}
        copies: List[Element] = []
        new_roots: List[str] = []
        for root_id in roots:
            root = state.element(root_id)
            max_z = self._max_z(root.template_id)
            for old_id in self._subtree_ids([root_id]):
                original = state.element(old_id)
                new_id = str(uuid.uuid4())
                id_map[old_id] = new_id
                update: Dict[str, Any] = {
                    "id": new_id,
                    "element_id": _new_handle(),
                    "parent_element_id": id_map.get(original.parent_element_id, original.parent_element_id),
                }
                if old_id == root_id:
                    update.update(
                        name=f"{original.name} Copy",
                        position_x=original.position_x + offset,
                        position_y=original.position_y + offset,
                        sort_order=self._next_sort_order(original.template_id, original.parent_element_id, copies),
                        z_index=pinned_z_index(original.element_type, max_z),
                    )
                    new_roots.append(new_id)
                copies.append(original.model_copy(update=update, deep=True))
        state.elements.extend(copies)
        self.copy_dependents(subtree, id_map)

        state.selected_element_ids = list(new_roots)
        self._commit(f"Duplicate {len(new_roots)} element(s)")
        return new_roots

    def ancestor_ids(self, element_id: str) -> List[str]:
        chain: List[str] = []
        current = self.state.element(element_id)
        while current is not None and current.parent_element_id and current.parent_element_id not in chain:
            chain.append(current.parent_element_id)
            current = self.state.element(current.parent_element_id)
        return chain

    def copy_dependents(self, element_ids: Set[str], id_map: Dict[str, str], template_id: Optional[str] = None) -> None:
        """Clone animations, keyframes and bindings of ``element_ids`` onto their copies."""
        state = self.state
        animation_map: Dict[str, str] = {}
        new_animations = []
        for anim in [a for a in state.animations if a.element_id in element_ids]:
            new_id = str(uuid.uuid4())
            animation_map[anim.id] = new_id
            update: Dict[str, Any] = {"id": new_id, "element_id": id_map[anim.element_id]}
            if template_id:
                update["template_id"] = template_id
            new_animations.append(anim.model_copy(update=update, deep=True))
        new_keyframes = [
            kf.model_copy(update={"id": str(uuid.uuid4()), "animation_id": animation_map[kf.animation_id]}, deep=True)
            for kf in state.keyframes
            if kf.animation_id in animation_map
        ]
        new_bindings = []
        for binding in [b for b in state.bindings if b.element_id in element_ids]:
            update = {"id": str(uuid.uuid4()), "element_id": id_map[binding.element_id]}
            if template_id:
                update["template_id"] = template_id
            new_bindings.append(binding.model_copy(update=update, deep=True))
        state.animations.extend(new_animations)
        state.keyframes.extend(new_keyframes)
        state.bindings.extend(new_bindings)

    # --- update / delete ---

    def update_element(self, element_id: str, **updates: Any) -> bool:
        """Merge ``updates`` into the element. Does not push history."""
        element = self.state.element(element_id)
        if element is None:
            logger.warning("update_element: unknown element %s", element_id)
            return False
        updates.pop("id", None)
        if isinstance(updates.get("content"), Mapping):
            updates["content"] = {**element.content.model_dump(), **updates["content"]}
        merged = {**element.model_dump(), **updates}
        try:
            updated = Element.model_validate(merged)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid update for element {element_id}: {exc.error_count()} error(s)") from exc
        if updated.parent_element_id != element.parent_element_id and (
            not self._valid_parent(updated.template_id, updated.parent_element_id)
            or updated.parent_element_id in self._subtree_ids([element_id])
        ):
            logger.warning("update_element: rejected parent %s for %s", updated.parent_element_id, element_id)
            return False

        self._replace(updated)
        self.state.mark_dirty()
        self._schedule_fit(updated.parent_element_id)
        if element.parent_element_id != updated.parent_element_id:
            self._schedule_fit(element.parent_element_id)
        if "content" in updates:
            self._schedule_fit(element_id)
        return True

    def delete_elements(self, ids: List[str]) -> List[str]:
        """Delete elements, their descendants and everything attached to them."""
        state = self.state
        removed = self._subtree_ids(ids)
        if not removed:
            return []
        removed_set = set(removed)
        parents = {
            state.element(i).parent_element_id for i in removed
        } - removed_set - {None}

        animation_ids = [a.id for a in state.animations if a.element_id in removed_set]
        animation_set = set(animation_ids)
        keyframe_ids = [k.id for k in state.keyframes if k.animation_id in animation_set]
        keyframe_set = set(keyframe_ids)
        binding_ids = [b.id for b in state.bindings if b.element_id in removed_set]
        binding_set = set(binding_ids)

        state.elements = [e for e in state.elements if e.id not in removed_set]
        state.animations = [a for a in state.animations if a.id not in animation_set]
        state.keyframes = [k for k in state.keyframes if k.id not in keyframe_set]
        state.bindings = [b for b in state.bindings if b.id not in binding_set]

        pending = state.pending_deletions
        pending.enqueue(EntityKind.ELEMENTS, removed)
        pending.enqueue(EntityKind.ANIMATIONS, animation_ids)
        pending.enqueue(EntityKind.KEYFRAMES, keyframe_ids)
        pending.enqueue(EntityKind.BINDINGS, binding_ids)

        state.selected_element_ids = [i for i in state.selected_element_ids if i not in removed_set]
        state.selected_keyframe_ids = [i for i in state.selected_keyframe_ids if i not in keyframe_set]
        state.expanded_nodes -= removed_set
        if state.hovered_element_id in removed_set:
            state.hovered_element_id = None
        for parent_id in parents:
            self._schedule_fit(parent_id)
        self._commit(f"Delete {len(removed)} element(s)")
        return removed

    # --- grouping ---

    def group_elements(self, ids: List[str]) -> Optional[str]:
        state = self.state
        members = [state.element(i) for i in dict.fromkeys(ids)]
        members = [m for m in members if m is not None]
        if len(members) < 2:
            logger.warning("group_elements: need at least two elements, got %d", len(members))
            return None
        template_ids = {m.template_id for m in members}
        parent_ids = {m.parent_element_id for m in members}
        if len(template_ids) != 1 or len(parent_ids) != 1:
            logger.warning("group_elements: elements do not share one parent")
            return None

        bounds = union_bounds(
            Rect(x=m.position_x, y=m.position_y, width=m.width or 0, height=m.height or 0) for m in members
        )
        group = Element(
            template_id=members[0].template_id,
            name=f"Group ({len(members)})",
            element_id=_new_handle("group"),
            element_type=ElementType.GROUP,
            parent_element_id=members[0].parent_element_id,
            sort_order=min(m.sort_order for m in members),
            z_index=max(m.z_index for m in members),
            position_x=bounds.min_x,
            position_y=bounds.min_y,
            width=bounds.width,
            height=bounds.height,
            anchor_x=0,
            anchor_y=0,
            content=GroupContent(),
        )
        origin = Point(x=bounds.min_x, y=bounds.min_y)
        member_ids = [m.id for m in members]
        for member in members:
            relative = to_relative(Point(x=member.position_x, y=member.position_y), origin)
            self._replace(member.model_copy(
                update={"parent_element_id": group.id, "position_x": relative.x, "position_y": relative.y}
            ))
        self._shift_keyframes(member_ids, -bounds.min_x, -bounds.min_y)
        state.elements.append(group)

        state.selected_element_ids = [group.id]
        state.expanded_nodes.add(group.id)
        self._commit("Group elements")
        return group.id

    def ungroup_elements(self, group_id: str) -> Optional[List[str]]:
        """Dissolve a group; returns the former children ids."""
        state = self.state
        group = state.element(group_id)
        if group is None or group.element_type != ElementType.GROUP:
            logger.warning("ungroup_elements: %s is not a group", group_id)
            return None

        children = self._outline_order(group.template_id, group.id)
        # Children take over the group's outline slot and stack from its z-index upward.
        outline = self._outline_order(group.template_id, group.parent_element_id)
        slot = next(i for i, e in enumerate(outline) if e.id == group_id)
        painted = sorted(children, key=lambda e: (e.z_index, e.sort_order))
        stacked = {c.id: group.z_index + i for i, c in enumerate(painted)}
        origin = Point(x=group.position_x, y=group.position_y)
        released = []
        for child in children:
            absolute = to_absolute(Point(x=child.position_x, y=child.position_y), origin)
            released.append(child.model_copy(
                update={
                    "parent_element_id": group.parent_element_id,
                    "position_x": absolute.x,
                    "position_y": absolute.y,
                    "z_index": stacked[child.id],
                }
            ))
        merged = outline[:slot] + released + outline[slot + 1:]
        for position, sibling in enumerate(merged):
            self._replace(sibling.model_copy(update={"sort_order": position}))
        child_ids = [c.id for c in children]
        self._shift_keyframes(child_ids, group.position_x, group.position_y)

        animation_ids = [a.id for a in state.animations if a.element_id == group_id]
        keyframe_ids = [k.id for k in state.keyframes if k.animation_id in animation_ids]
        binding_ids = [b.id for b in state.bindings if b.element_id == group_id]
        state.elements = [e for e in state.elements if e.id != group_id]
        state.animations = [a for a in state.animations if a.element_id != group_id]
        state.keyframes = [k for k in state.keyframes if k.animation_id not in animation_ids]
        state.bindings = [b for b in state.bindings if b.element_id != group_id]
        pending = state.pending_deletions
        pending.enqueue(EntityKind.ELEMENTS, [group_id])
        pending.enqueue(EntityKind.ANIMATIONS, animation_ids)
        pending.enqueue(EntityKind.KEYFRAMES, keyframe_ids)
        pending.enqueue(EntityKind.BINDINGS, binding_ids)

        state.expanded_nodes.discard(group_id)
        state.selected_element_ids = child_ids
        self._commit("Ungroup elements")
        return child_ids

    def move_elements_to_template(self, ids: List[str], target_template_id: str) -> bool:
        state = self.state
        target = state.template(target_template_id)
        if target is None:
            logger.warning("move_elements_to_template: unknown template %s", target_template_id)
            return False
        moved = self._subtree_ids(ids)
        if not moved:
            return False
        moved_set = set(moved)

        for element_id in moved:
            element = state.element(element_id)
            update: Dict[str, Any] = {"template_id": target_template_id}
            if element.parent_element_id not in moved_set:
                if element.parent_element_id:
                    absolute = to_absolute(
                        Point(x=element.position_x, y=element.position_y),
                        self.absolute_origin(element.parent_element_id),
                    )
                    update.update(parent_element_id=None, position_x=absolute.x, position_y=absolute.y)
                update["sort_order"] = self._next_sort_order(target_template_id, None)
            self._replace(element.model_copy(update=update))

        for anim in state.animations:
            if anim.element_id in moved_set:
                anim.template_id = target_template_id
        for binding in state.bindings:
            if binding.element_id in moved_set:
                binding.template_id = target_template_id

        state.selected_element_ids = []
        self._commit(f"Move elements to {target.name}")
        return True

    # --- ordering ---

    def reorder_element(self, element_id: str, index: int, new_parent_id: Optional[str] = _UNCHANGED) -> bool:
        """Move an element to ``index`` among its (possibly new) siblings."""
        state = self.state
        element = state.element(element_id)
        if element is None:
            logger.warning("reorder_element: unknown element %s", element_id)
            return False
        parent_id = element.parent_element_id if new_parent_id is _UNCHANGED else new_parent_id
        if parent_id != element.parent_element_id:
            if not self._valid_parent(element.template_id, parent_id) or parent_id in self._subtree_ids([element_id]):
                logger.warning("reorder_element: invalid parent %s for %s", parent_id, element_id)
                return False
            old_parent = element.parent_element_id
            element = self._relocate(element, parent_id)
            self._replace(element)
            self._schedule_fit(old_parent)

        siblings = [e for e in self._outline_order(element.template_id, parent_id) if e.id != element_id]
        index = max(0, min(index, len(siblings)))
        siblings.insert(index, element)
        for position, sibling in enumerate(siblings):
            self._replace(sibling.model_copy(update={"sort_order": position, "z_index": position * Z_STEP}))
        self._schedule_fit(parent_id)
        self._commit("Reorder element")
        return True

    def bring_to_front(self, element_id: str) -> bool:
        element = self.state.element(element_id)
        if element is None:
            return False
        siblings = self._siblings(element)
        top = max((e.z_index for e in siblings), default=0)
        self._replace(element.model_copy(update={"z_index": top + Z_STEP}))
        self._commit("Bring to front")
        return True

    def send_to_back(self, element_id: str) -> bool:
        element = self.state.element(element_id)
        if element is None:
            return False
        siblings = self._siblings(element)
        bottom = min((e.z_index for e in siblings), default=0)
        self._replace(element.model_copy(update={"z_index": max(0, bottom - Z_STEP)}))
        self._commit("Send to back")
        return True

    def bring_forward(self, element_id: str) -> bool:
        element = self.state.element(element_id)
        if element is None:
            return False
        above = [e for e in self._siblings(element) if e.z_index > element.z_index]
        if above:
            other = min(above, key=lambda e: (e.z_index, e.sort_order))
            self._replace(other.model_copy(update={"z_index": element.z_index}))
            self._replace(element.model_copy(update={"z_index": other.z_index}))
        else:
            self._replace(element.model_copy(update={"z_index": element.z_index + Z_STEP}))
        self._commit("Bring forward")
        return True

    def send_backward(self, element_id: str) -> bool:
        element = self.state.element(element_id)
        if element is None:
            return False
        below = [e for e in self._siblings(element) if e.z_index < element.z_index]
        if below:
            other = max(below, key=lambda e: (e.z_index, e.sort_order))
            self._replace(other.model_copy(update={"z_index": element.z_index}))
            self._replace(element.model_copy(update={"z_index": other.z_index}))
        else:
            self._replace(element.model_copy(update={"z_index": max(0, element.z_index - Z_STEP)}))
        self._commit("Send backward")
        return True

    def set_z_index(self, element_id: str, z_index: int) -> bool:
        element = self.state.element(element_id)
        if element is None:
            return False
        self._replace(element.model_copy(update={"z_index": max(0, int(z_index))}))
        self._commit("Set z-index")
        return True

    # --- fit to content ---

    def _schedule_fit(self, parent_id: Optional[str]) -> None:
        if parent_id is None:
            return
        parent = self.state.element(parent_id)
        if parent is None or not getattr(parent.content, "fit_to_content", False):
            return
        self.scheduler.schedule(("fit", parent_id), lambda: self.fit_element_to_content(parent_id))

    def _fit_child(self, child: Element) -> FitChild:
        text = None
        if isinstance(child.content, TextContent) and (child.width is None or child.height is None):
            styles = child.styles
            text = TextSpec(
                text=child.content.text,
                font_family=str(styles.get("fontFamily", "Inter")),
                font_size=styles.get("fontSize", 16),
                font_weight=styles.get("fontWeight", 400),
                font_style=str(styles.get("fontStyle", "normal")),
                wrap_width=child.width,
            )
        return FitChild(
            id=child.id,
            x=child.position_x,
            y=child.position_y,
            width=child.width,
            height=child.height,
            text=text,
        )

    def fit_element_to_content(self, element_id: str) -> bool:
        """Resize an auto-fit container around its children right now."""
        state = self.state
        parent = state.element(element_id)
        if parent is None:
            return False
        children = [c for c in state.children_of(parent.template_id, parent.id) if c.visible]
        if not children:
            return False
        raw_padding = getattr(parent.content, "padding", None) or {}
        result = fit_to_content(
            Rect(x=parent.position_x, y=parent.position_y, width=parent.width or 0, height=parent.height or 0),
            [self._fit_child(c) for c in children],
            padding=Padding(**raw_padding),
            measurer=self.measurer,
        )
        self._replace(parent.model_copy(update={
            "position_x": result.parent.x,
            "position_y": result.parent.y,
            "width": result.parent.width,
            "height": result.parent.height,
        }))
        for child in children:
            point = result.child_positions[child.id]
            self._replace(child.model_copy(update={"position_x": point.x, "position_y": point.y}))
        state.mark_dirty()
        self._schedule_fit(parent.parent_element_id)
        return True
