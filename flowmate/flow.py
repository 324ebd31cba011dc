"""
Flow and block data model.

A flow is an ordered list of blocks. Block order is execution order, except
where a repeater block (loop / for_each) consumes the run of blocks after it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class BlockCategory(str, Enum):
    """Palette category a block type belongs to."""
    PAGE = "page"
    INTERACTION = "interaction"
    DATA = "data"
    LOGIC = "logic"


class BlockType(str, Enum):
    """Closed vocabulary of block type tags."""
    # Navigation and tab management
    NAVIGATE = "navigate"
    NEW_TAB = "new_tab"
    ACTIVATE_TAB = "activate_tab"
    SWITCH_TAB = "switch_tab"
    CLOSE_TAB = "close_tab"
    PIN_TAB = "pin_tab"
    MUTE_TAB = "mute_tab"
    REFRESH = "refresh"
    # Local data and variables
    WAIT = "wait"
    SET_VARIABLE = "set_variable"
    GET_TAB_INFO = "get_tab_info"
    SCREENSHOT = "screenshot"
    # DOM interaction through the content capability
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    SCROLL = "scroll"
    HOVER = "hover"
    KEYBOARD = "keyboard"
    WAIT_FOR_ELEMENT = "wait_for_element"
    READ_TEXT = "read_text"
    READ_ATTRIBUTE = "read_attribute"
    READ_TABLE = "read_table"
    # Control flow
    CONDITION = "condition"
    LOOP = "loop"
    FOR_EACH = "for_each"

    @classmethod
    def parse(cls, value: str) -> Optional["BlockType"]:
        """Return the matching member, or None for an unknown tag."""
        try:
            return cls(value)
        except ValueError:
            return None


# Repeaters own the contiguous run of blocks that follows them
REPEATER_TYPES = frozenset({BlockType.LOOP, BlockType.FOR_EACH})
CONTROL_TYPES = frozenset({BlockType.CONDITION, BlockType.LOOP, BlockType.FOR_EACH})


@dataclass(frozen=True)
class BlockMeta:
    """Display metadata for a block type."""
    icon: str
    label: str
    category: BlockCategory

    @property
    def title(self) -> str:
        return f"{self.icon} {self.label}"


BLOCK_META: Dict[BlockType, BlockMeta] = {
    BlockType.NAVIGATE: BlockMeta("🌐", "Navigate", BlockCategory.PAGE),
    BlockType.NEW_TAB: BlockMeta("📑", "New Tab", BlockCategory.PAGE),
    BlockType.ACTIVATE_TAB: BlockMeta("🔝", "Activate Tab", BlockCategory.PAGE),
    BlockType.SWITCH_TAB: BlockMeta("🔁", "Switch Tab", BlockCategory.PAGE),
    BlockType.CLOSE_TAB: BlockMeta("❌", "Close Tab", BlockCategory.PAGE),
    BlockType.PIN_TAB: BlockMeta("📌", "Pin Tab", BlockCategory.PAGE),
    BlockType.MUTE_TAB: BlockMeta("🔇", "Mute Tab", BlockCategory.PAGE),
    BlockType.REFRESH: BlockMeta("🔄", "Refresh", BlockCategory.PAGE),
    BlockType.WAIT: BlockMeta("⏳", "Wait", BlockCategory.PAGE),
    BlockType.WAIT_FOR_ELEMENT: BlockMeta("👁️", "Wait For Element", BlockCategory.PAGE),
    BlockType.SET_VARIABLE: BlockMeta("📝", "Set Variable", BlockCategory.DATA),
    BlockType.GET_TAB_INFO: BlockMeta("ℹ️", "Get Tab Info", BlockCategory.DATA),
    BlockType.SCREENSHOT: BlockMeta("📸", "Screenshot", BlockCategory.DATA),
    BlockType.READ_TEXT: BlockMeta("📖", "Read Text", BlockCategory.DATA),
    BlockType.READ_ATTRIBUTE: BlockMeta("🔍", "Read Attribute", BlockCategory.DATA),
    BlockType.READ_TABLE: BlockMeta("📊", "Read Table", BlockCategory.DATA),
    BlockType.CLICK: BlockMeta("🖱️", "Click", BlockCategory.INTERACTION),
    BlockType.TYPE: BlockMeta("⌨️", "Type", BlockCategory.INTERACTION),
    BlockType.SELECT: BlockMeta("📋", "Select", BlockCategory.INTERACTION),
    BlockType.SCROLL: BlockMeta("📜", "Scroll", BlockCategory.INTERACTION),
    BlockType.HOVER: BlockMeta("👆", "Hover", BlockCategory.INTERACTION),
    BlockType.KEYBOARD: BlockMeta("⌨️", "Send Key", BlockCategory.INTERACTION),
    BlockType.CONDITION: BlockMeta("🔀", "Condition", BlockCategory.LOGIC),
    BlockType.LOOP: BlockMeta("🔁", "Loop", BlockCategory.LOGIC),
    BlockType.FOR_EACH: BlockMeta("🔄", "For Each", BlockCategory.LOGIC),
}

FALLBACK_ICON = "⚡"


def block_meta(block_type: str) -> BlockMeta:
    """
    Resolve display metadata for a block type tag.

    Unknown tags get a generic icon and the raw tag as label, so status
    messages can still name the block that is about to fail.
    """
    known = BlockType.parse(block_type)
    if known is not None:
        return BLOCK_META[known]
    return BlockMeta(FALLBACK_ICON, str(block_type), BlockCategory.LOGIC)


@dataclass
class Block:
    """
    One authored step in a flow.

    Attributes:
        id: Identifier, unique within the flow
        type: Raw type tag (see BlockType); kept as a string so unknown tags
            survive loading and fail at dispatch time
        params: Raw parameter values, before interpolation
        enabled: Disabled blocks are always skipped
    """
    type: str
    params: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def block_type(self) -> Optional[BlockType]:
        return BlockType.parse(self.type)

    @property
    def is_repeater(self) -> bool:
        return self.block_type in REPEATER_TYPES

    @property
    def label(self) -> str:
        return block_meta(self.type).title

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "params": dict(self.params),
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Block":
        kwargs: Dict[str, Any] = {
            "type": data["type"],
            "params": dict(data.get("params") or {}),
            "enabled": data.get("enabled", True) is not False,
        }
        if data.get("id") is not None:
            kwargs["id"] = str(data["id"])
        return cls(**kwargs)


@dataclass
class Flow:
    """A named, ordered sequence of blocks."""
    name: str
    blocks: List[Block] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def enabled_count(self) -> int:
        return sum(1 for block in self.blocks if block.enabled)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "blocks": [block.to_dict() for block in self.blocks],
        }
        if self.settings:
            data["settings"] = dict(self.settings)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flow":
        """Build a flow from already-parsed data (no validation)."""
        kwargs: Dict[str, Any] = {
            "name": str(data.get("name", "")),
            "blocks": [Block.from_dict(b) for b in data.get("blocks", [])],
        }
        if data.get("id") is not None:
            kwargs["id"] = str(data["id"])
        if data.get("created_at") is not None:
            kwargs["created_at"] = str(data["created_at"])
        if data.get("settings"):
            kwargs["settings"] = dict(data["settings"])
        return cls(**kwargs)
