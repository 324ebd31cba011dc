"""Flow file loader with strict validation."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Set, Union
import yaml

from flowmate.config import EngineConfig
from flowmate.exceptions import ValidationError, FlowValidationError
from flowmate.flow import BlockType, Flow, REPEATER_TYPES


logger = logging.getLogger(__name__)


class PreservingLoader(yaml.SafeLoader):
    """YAML loader that keeps 'on'/'off' as strings instead of converting them to bool."""
    pass


# Drop the implicit bool resolvers for words starting with o/O ('on', 'off'),
# which are ordinary select values for pin/mute blocks
PreservingLoader.yaml_implicit_resolvers = dict(PreservingLoader.yaml_implicit_resolvers)
for _first in ('o', 'O'):
    if _first in PreservingLoader.yaml_implicit_resolvers:
        PreservingLoader.yaml_implicit_resolvers[_first] = [
            (tag, regexp) for tag, regexp in PreservingLoader.yaml_implicit_resolvers[_first]
            if tag != 'tag:yaml.org,2002:bool'
        ]


class FlowLoader:
    """Loads and validates flow files (YAML or JSON)."""

    FLOW_FIELDS = {'id', 'name', 'created_at', 'settings', 'blocks'}
    BLOCK_FIELDS = {'id', 'type', 'params', 'enabled'}
    SCALAR_TYPES = (str, int, float, bool)

    def __init__(self):
        self.errors: List[ValidationError] = []

    def load(self, flow_path: Union[str, Path]) -> Flow:
        """
        Load and validate a flow file.

        Args:
            flow_path: Path to a .yaml/.yml or .json file

        Returns:
            The validated Flow

        Raises:
            FlowValidationError: With every problem found
        """
        self.errors = []
        flow_path = Path(flow_path)
        try:
            with open(flow_path, 'r', encoding='utf-8') as f:
                if flow_path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    data = yaml.load(f, Loader=PreservingLoader)
        except (OSError, ValueError, yaml.YAMLError) as e:
            self._add_error(f"Failed to load flow: {e}")
            self._raise_validation_errors()

        return self.load_data(data)

    def load_data(self, data: Any) -> Flow:
        """Validate already-parsed flow data and build a Flow from it."""
        self.errors = []

        if data is None or not isinstance(data, dict):
            self._add_error("Flow must be an object/dictionary")
            self._raise_validation_errors()

        for key in data.keys():
            if key not in self.FLOW_FIELDS:
                self._add_error(f"Unknown field '{key}'")

        name = data.get('name')
        if not name or not isinstance(name, str):
            self._add_error("'name' field is required and must be a string")

        if 'settings' in data:
            self._validate_settings(data['settings'])

        blocks = data.get('blocks')
        if not blocks:
            self._add_error("'blocks' field is required and must not be empty")
            normalized: List[Dict[str, Any]] = []
        else:
            normalized = self._validate_blocks(blocks)

        if self.errors:
            self._raise_validation_errors()

        flow_data = dict(data)
        flow_data['blocks'] = normalized
        flow = Flow.from_dict(flow_data)
        logger.debug(f"Loaded flow '{flow.name}' with {len(flow.blocks)} block(s)")
        return flow

    def _validate_settings(self, settings: Any):
        """Validate engine settings."""
        if not isinstance(settings, dict):
            self._add_error("'settings' must be a dictionary", path="settings")
            return
        try:
            EngineConfig.from_dict(settings)
        except (TypeError, ValueError) as e:
            self._add_error(str(e), path="settings")

    def _validate_blocks(self, blocks: Any) -> List[Dict[str, Any]]:
        """Validate block definitions and return them with ids filled in."""
        if not isinstance(blocks, list):
            self._add_error("'blocks' must be a list")
            return []

        normalized: List[Dict[str, Any]] = []
        block_ids: Set[str] = set()

        for i, block in enumerate(blocks):
            path = f"blocks[{i}]"
            if not isinstance(block, dict):
                self._add_error("Block must be a dictionary", path=path)
                continue

            for key in block.keys():
                if key not in self.BLOCK_FIELDS:
                    self._add_error(f"Unknown block field '{key}'", path=path)

            block_type = block.get('type')
            if not block_type or not isinstance(block_type, str):
                self._add_error("Block missing required 'type' field", path=path)
                block_type = ""
            elif BlockType.parse(block_type) is None:
                # Unknown types are kept; they fail when the flow reaches them
                logger.warning(f"{path}: unknown block type '{block_type}'")

            block_id = block.get('id')
            if block_id is None:
                block_id = f"block_{i + 1}"
            elif not isinstance(block_id, (str, int)) or isinstance(block_id, bool):
                self._add_error(f"Block id must be a string, got {type(block_id).__name__}", path=path)
            block_id = str(block_id)
            if block_id in block_ids:
                self._add_error(f"Duplicate block id '{block_id}'", path=path)
            block_ids.add(block_id)

            params = block.get('params', {})
            if params is None:
                params = {}
            if not isinstance(params, dict):
                self._add_error("'params' must be a dictionary", path=path)
                params = {}
            for key, value in params.items():
                if value is not None and not isinstance(value, self.SCALAR_TYPES):
                    self._add_error(
                        f"Parameter '{key}' must be a string, number or boolean",
                        path=f"{path}.params"
                    )

            enabled = block.get('enabled', True)
            if not isinstance(enabled, bool):
                self._add_error("'enabled' must be a boolean", path=path)

            normalized.append({
                'id': block_id,
                'type': block_type,
                'params': params,
                'enabled': enabled is not False,
            })

        self._validate_repeater_bodies(normalized)
        return normalized

    def _validate_repeater_bodies(self, blocks: List[Dict[str, Any]]):
        """Reject repeaters that are followed by another repeater or by nothing."""
        for i, block in enumerate(blocks):
            if BlockType.parse(block["type"]) not in REPEATER_TYPES:
                continue
            following = blocks[i + 1] if i + 1 < len(blocks) else None
            if following is None:
                self._add_error(f"'{block['type']}' has no blocks below it to repeat", path=f"blocks[{i}]")
            elif BlockType.parse(following["type"]) in REPEATER_TYPES:
                self._add_error(
                    f"'{block['type']}' is directly followed by '{following['type']}'; "
                    f"nested repeaters are not supported",
                    path=f"blocks[{i}]"
                )

    def _add_error(self, message: str, path: str = "", exit_code: int = 2):
        """Add validation error."""
        self.errors.append(ValidationError(message, path, exit_code))

    def _raise_validation_errors(self):
        """Raise FlowValidationError with accumulated errors."""
        raise FlowValidationError(self.errors)
