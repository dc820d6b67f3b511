"""Map a windowed view onto screen coordinates.

Heights run left to right at a uniform pitch of ``block_size + margin_x``.
Blocks sharing a height are stacked symmetrically around the centre line.
Edge vectors go from the child block to its parent, and the arrow tip is
clipped to the rounded-rectangle outline of the parent.

Everything here is a pure function of its inputs; nothing is cached between
calls, so a renderer can diff consecutive layouts safely.
"""

import math
from dataclasses import dataclass, field

from dagtimeline.config import ThemeConfig
from dagtimeline.models import Block, BlockColor, WindowedView


@dataclass(frozen=True)
class BlockPlacement:
    block_id: int
    height: int
    x: float
    y: float
    size: float
    color: BlockColor
    is_in_virtual_selected_parent_chain: bool


@dataclass(frozen=True)
class EdgePlacement:
    """Edge geometry relative to the child block at (x, y)."""

    from_block_id: int
    to_block_id: int
    x: float
    y: float
    to_y: float
    vector_x: float
    vector_y: float
    bounds_x: float  # clipped boundary point, relative to the parent centre
    bounds_y: float
    tip_x: float  # arrow tip on the parent outline, relative to (x, y)
    tip_y: float
    arrow_x: float
    arrow_y: float
    arrow_rotation: float
    line_width: float
    arrow_radius: float
    is_in_virtual_selected_parent_chain: bool


@dataclass(frozen=True)
class TimelineLayout:
    screen_width: float
    screen_height: float
    block_size: int
    margin_x: float
    target_height: int
    offset_x: float
    offset_y: float
    blocks: list[BlockPlacement] = field(default_factory=list)
    edges: list[EdgePlacement] = field(default_factory=list)

    def block(self, block_id: int) -> BlockPlacement | None:
        return next((b for b in self.blocks if b.block_id == block_id), None)


class LayoutEngine:
    """Computes block and edge positions from a view and the viewport."""

    def __init__(self, theme: ThemeConfig | None = None) -> None:
        self.theme = theme or ThemeConfig()

    # --- Sizing ---

    def block_size(self, screen_height: float, zoom: float) -> int:
        return math.floor(screen_height * zoom / self.theme.timeline.max_blocks_per_height)

    def margin_x(self, block_size: float) -> float:
        return block_size * self.theme.timeline.margin_x_multiplier

    def margin_y(
        self, block_size: float, group_size: int, screen_height: float, zoom: float,
    ) -> float:
        """Vertical gap between siblings, shrunk if the group would overflow."""
        min_margin = block_size * self.theme.timeline.min_margin_y_multiplier
        nominal_height = min(screen_height, screen_height * zoom)
        margin = max(min_margin, nominal_height / group_size - block_size)
        if (block_size + margin) * group_size > screen_height:
            margin = max(0.0, screen_height / group_size - block_size)
        return margin

    def real_block_size(self, block_size: float) -> float:
        return block_size * self.theme.block_scale

    # --- Positions ---

    def block_x(self, height: int, block_size: float, margin_x: float) -> float:
        return height * (block_size + margin_x)

    def block_y(
        self,
        height_group_index: int,
        group_size: int,
        screen_height: float,
        block_size: float,
        zoom: float,
    ) -> float:
        """Offset from the centre line for a block within its height group.

        Odd groups put index 0 on the centre line; the remaining indices
        alternate above and below, moving outward as the index grows.
        """
        if group_size == 1:
            return 0.0
        if height_group_index == 0 and group_size % 2 == 1:
            return 0.0

        slot = height_group_index * 2 + (group_size - height_group_index - 1) % 2
        sign = 1 if group_size % 2 == 0 else -1
        centered_index = math.ceil(slot / 2) * (-1) ** (slot + 1) * sign

        margin = self.margin_y(block_size, group_size, screen_height, zoom)
        return centered_index * (block_size + margin) / 2

    def clamp_vector_to_bounds(
        self, block_size: float, vector_x: float, vector_y: float,
    ) -> tuple[float, float]:
        """Point where the reversed vector crosses the parent block's outline.

        Returned relative to the parent centre. Shallow vectors exit through a
        vertical side, steep ones through the top or bottom, and anything in
        between through a rounded corner.
        """
        half = self.real_block_size(block_size) / 2
        sign_x = 1 if vector_x >= 0 else -1
        sign_y = 1 if vector_y >= 0 else -1

        if vector_y == 0:
            return sign_x * half, 0.0
        if vector_x == 0:
            return 0.0, sign_y * half

        radius = self.theme.scale(self.theme.rounding_radius, block_size)
        straight = half - radius
        tangent = abs(vector_y) / abs(vector_x)

        y_at_side = half * tangent
        if y_at_side <= straight:
            return sign_x * half, sign_y * y_at_side

        x_at_top = half / tangent
        if x_at_top <= straight:
            return sign_x * x_at_top, sign_y * half

        # Line y = t*x against the corner circle centred at (straight, straight).
        a = tangent ** 2 + 1
        b = -(2 * straight * (tangent + 1))
        c = 2 * straight ** 2 - radius ** 2
        x = (-b + math.sqrt(b ** 2 - 4 * a * c)) / (2 * a)
        return sign_x * x, sign_y * x * tangent

    def timeline_offset(
        self, target_height: int, screen_width: float, screen_height: float, zoom: float,
    ) -> tuple[float, float]:
        """Origin shift that centres the target height column in the viewport."""
        size = self.block_size(screen_height, zoom)
        offset_y = screen_height / 2
        if target_height < 0:
            return 0.0, offset_y
        return screen_width / 2 - self.block_x(target_height, size, self.margin_x(size)), offset_y

    # --- Visible range ---

    def max_blocks_on_half_screen(
        self, screen_width: float, screen_height: float, zoom: float,
    ) -> int:
        size = self.block_size(screen_height, zoom)
        pitch = size + self.margin_x(size)
        if pitch <= 0:
            return self.theme.timeline.visible_height_range_padding
        return math.ceil(screen_width / pitch / 2) + self.theme.timeline.visible_height_range_padding

    def visible_slots_after_half_screen(
        self, screen_width: float, screen_height: float, zoom: float, right_margin: float,
    ) -> int:
        size = self.block_size(screen_height, zoom)
        margin = self.margin_x(size)
        pitch = size + margin
        if pitch <= 0:
            return 0
        width_between = max(0.0, (screen_width - pitch) / 2 - right_margin + margin / 2)
        return math.floor(width_between / pitch)

    # --- Full layout ---

    def layout(
        self,
        view: WindowedView,
        target_height: int,
        screen_width: float,
        screen_height: float,
        zoom: float,
    ) -> TimelineLayout:
        size = self.block_size(screen_height, zoom)
        margin = self.margin_x(size)
        offset_x, offset_y = self.timeline_offset(target_height, screen_width, screen_height, zoom)

        group_sizes = {hg.height: hg.size for hg in view.height_groups}
        blocks_by_id: dict[int, Block] = {b.id: b for b in view.blocks}

        edges: list[EdgePlacement] = []
        for edge in view.edges:
            from_size = group_sizes.get(edge.from_height)
            to_size = group_sizes.get(edge.to_height)
            if from_size is None or to_size is None:
                continue

            from_x = self.block_x(edge.from_height, size, margin)
            to_x = self.block_x(edge.to_height, size, margin)
            from_y = self.block_y(edge.from_height_group_index, from_size, screen_height, size, zoom)
            to_y = self.block_y(edge.to_height_group_index, to_size, screen_height, size, zoom)

            from_block = blocks_by_id.get(edge.from_block_id)
            to_block = blocks_by_id.get(edge.to_block_id)
            in_chain = bool(
                from_block and to_block
                and from_block.is_in_virtual_selected_parent_chain
                and to_block.is_in_virtual_selected_parent_chain
            )
            edges.append(self._place_edge(
                edge.from_block_id, edge.to_block_id,
                from_x, from_y, to_x - from_x, to_y - from_y, to_y, size, in_chain,
            ))

        blocks: list[BlockPlacement] = []
        for block in view.blocks:
            group_size = group_sizes.get(block.height)
            if group_size is None:
                continue
            blocks.append(BlockPlacement(
                block_id=block.id,
                height=block.height,
                x=self.block_x(block.height, size, margin),
                y=self.block_y(block.height_group_index, group_size, screen_height, size, zoom),
                size=self.real_block_size(size),
                color=block.color,
                is_in_virtual_selected_parent_chain=block.is_in_virtual_selected_parent_chain,
            ))

        return TimelineLayout(
            screen_width=screen_width,
            screen_height=screen_height,
            block_size=size,
            margin_x=margin,
            target_height=target_height,
            offset_x=offset_x,
            offset_y=offset_y,
            blocks=blocks,
            edges=edges,
        )

    def _place_edge(
        self,
        from_block_id: int,
        to_block_id: int,
        x: float,
        y: float,
        vector_x: float,
        vector_y: float,
        to_y: float,
        block_size: int,
        in_chain: bool,
    ) -> EdgePlacement:
        bounds_x, bounds_y = self.clamp_vector_to_bounds(block_size, vector_x, vector_y)
        style = self.theme.edge_style(in_chain)
        line_width = self.theme.scale(style.line_width, block_size)
        arrow_radius = self.theme.scale(style.arrow_radius, block_size)

        tip_x = vector_x - bounds_x
        tip_y = vector_y - bounds_y
        magnitude = math.hypot(tip_x, tip_y)
        pull_back = arrow_radius + line_width
        if magnitude > 0:
            arrow_x = tip_x - tip_x * pull_back / magnitude
            arrow_y = tip_y - tip_y * pull_back / magnitude
        else:
            arrow_x, arrow_y = tip_x, tip_y

        return EdgePlacement(
            from_block_id=from_block_id,
            to_block_id=to_block_id,
            x=x,
            y=y,
            to_y=to_y,
            vector_x=vector_x,
            vector_y=vector_y,
            bounds_x=bounds_x,
            bounds_y=bounds_y,
            tip_x=tip_x,
            tip_y=tip_y,
            arrow_x=arrow_x,
            arrow_y=arrow_y,
            arrow_rotation=math.atan2(vector_y, vector_x) + math.pi / 2,
            line_width=line_width,
            arrow_radius=arrow_radius,
            is_in_virtual_selected_parent_chain=in_chain,
        )
