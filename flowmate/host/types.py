"""
Capability interfaces the engine consumes.

The engine never touches a browser directly: tab management goes through a
TabHost and DOM actions go through a ContentCapability. Both are async.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable


TabHandle = Any


class ContentAction(str, Enum):
    """Actions a content capability must support."""
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    HOVER = "hover"
    SCROLL = "scroll"
    READ_TEXT = "read_text"
    READ_ATTRIBUTE = "read_attribute"
    READ_TABLE = "read_table"
    WAIT_FOR_ELEMENT = "wait_for_element"
    KEYBOARD = "keyboard"
    # Engine queries
    EXISTS = "exists"
    INSPECT = "inspect"
    COUNT = "count"


# Actions that do not require the target to be visible before acting
VISIBILITY_EXEMPT = frozenset({
    ContentAction.READ_ATTRIBUTE,
    ContentAction.WAIT_FOR_ELEMENT,
    ContentAction.EXISTS,
    ContentAction.INSPECT,
    ContentAction.COUNT,
})


@dataclass
class TabInfo:
    """Snapshot of a browser tab."""
    id: TabHandle
    url: str = ""
    title: str = ""
    window_id: Any = None
    index: int = 0
    active: bool = False


@dataclass
class ContentResult:
    """
    Structured result of an in-page action.

    Attributes:
        success: Whether the action ran
        data: Produced value (read actions, queries); may be None
        has_data: Whether the action produced a value at all, so that a
            read returning null can be told apart from an action with no output
        error: Element/action failure text; never retried
        verified: For typing, whether the field visibly changed
    """
    success: bool = False
    data: Any = None
    error: Optional[str] = None
    verified: Optional[bool] = None
    has_data: bool = False

    def __post_init__(self):
        if self.data is not None:
            self.has_data = True

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ContentResult":
        return cls(
            success=bool(raw.get("success", False)),
            data=raw.get("data"),
            error=raw.get("error"),
            verified=raw.get("verified"),
            has_data="data" in raw,
        )


@dataclass
class ElementFacts:
    """What the page reports about one element, used by condition checks."""
    found: bool
    visible: bool = False
    text: str = ""

    @classmethod
    def from_data(cls, data: Any) -> "ElementFacts":
        if isinstance(data, ElementFacts):
            return data
        data = data or {}
        return cls(
            found=bool(data.get("found", False)),
            visible=bool(data.get("visible", False)),
            text=str(data.get("text") or ""),
        )


@runtime_checkable
class TabHost(Protocol):
    """Tab lifecycle primitives of the host browser."""

    async def create(self, url: str, active: bool = True) -> TabHandle: ...

    async def update(
        self,
        handle: TabHandle,
        *,
        url: Optional[str] = None,
        active: Optional[bool] = None,
        pinned: Optional[bool] = None,
        muted: Optional[bool] = None,
    ) -> None: ...

    async def get(self, handle: TabHandle) -> TabInfo: ...

    async def reload(self, handle: TabHandle) -> None: ...

    async def remove(self, handles: Sequence[TabHandle]) -> None: ...

    async def query(
        self,
        window_id: Any = None,
        active: Optional[bool] = None,
    ) -> List[TabInfo]: ...

    async def capture_visible(self, handle: TabHandle) -> Any: ...

    async def wait_for_load(self, handle: TabHandle) -> None:
        """Resolve once the tab reports a completed load; the engine bounds it."""
        ...


@runtime_checkable
class ContentCapability(Protocol):
    """Executes DOM-level actions inside a page."""

    async def execute_in_page(
        self,
        handle: TabHandle,
        action: ContentAction,
        params: Dict[str, Any],
    ) -> ContentResult:
        """
        Run one action in the page behind a tab.

        Raises:
            TransientDispatchError: When the script could not be injected
        """
        ...
