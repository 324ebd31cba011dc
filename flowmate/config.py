"""Engine configuration."""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional


@dataclass
class EngineConfig:
    """
    Tunables for a flow engine.

    Attributes:
        block_timeout_sec: Ceiling for one block, or one whole repeater
        load_timeout_sec: How long to wait for a tab to finish loading
        element_timeout_ms: How long to poll for an element before acting on it
        element_poll_ms: Interval between element polls
        max_retries: Extra attempts after a transient dispatch failure
        retry_delay_ms: Fixed delay between those attempts
        default_wait_ms: Duration used when a wait block has no usable duration
        default_loop_count: Count used when a loop block has no usable count
        default_child_selector: Item selector used by for-each when none is given
        display_text_limit: Max characters of page text quoted in a reason
    """
    block_timeout_sec: float = 30.0
    load_timeout_sec: float = 30.0
    element_timeout_ms: int = 10000
    element_poll_ms: int = 500
    max_retries: int = 2
    retry_delay_ms: int = 500
    default_wait_ms: int = 1000
    default_loop_count: int = 3
    default_child_selector: str = "li"
    display_text_limit: int = 80

    @classmethod
    def from_dict(cls, settings: Optional[Dict[str, Any]]) -> "EngineConfig":
        """
        Build a config from a settings mapping, ignoring None values.

        Raises:
            ValueError: On unknown setting names
        """
        if not settings:
            return cls()

        known = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in settings.items():
            if key not in known:
                raise ValueError(f"Unknown engine setting '{key}'")
            if value is None:
                continue
            # Coerce to the declared field type (YAML may give ints for floats)
            field_type = type(getattr(cls, key))
            kwargs[key] = field_type(value)
        return cls(**kwargs)

    def override(self, **overrides: Any) -> "EngineConfig":
        """Return a copy with the given non-None values replaced."""
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in overrides.items():
            if value is not None:
                current[key] = value
        return EngineConfig.from_dict(current)
