"""
Inventory persistence.

Reads and writes the YAML server inventory. Writes go through
``atomic_write_text``, so readers only ever see a complete file.

Concurrent writers are not coordinated. Inventory-changing commands assume
one CLI invocation per inventory file at a time.
"""

import logging
from pathlib import Path

import yaml

from fleetmon.models.server_inventory import Inventory
from fleetmon.utils.errors import InventoryParseError
from fleetmon.utils.files import PathLike, atomic_write_text

logger = logging.getLogger(__name__)


def dump_inventory(inventory: Inventory) -> str:
    """Serialize an inventory to YAML text."""
    return yaml.safe_dump(
        inventory.to_dict(),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


def parse_inventory(text: str, source: str = "<string>") -> Inventory:
    """Parse YAML text into an Inventory, checking the document shape."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise InventoryParseError(f"Invalid YAML in {source}: {e}", source) from e

    if data is None:
        data = {"servers": []}
    if not isinstance(data, dict):
        raise InventoryParseError(f"{source}: top level must be a mapping", source)

    servers = data.get("servers")
    if servers is None:
        servers = []
        data = dict(data, servers=servers)
    if not isinstance(servers, list):
        raise InventoryParseError(f"{source}: 'servers' must be a list", source)

    for index, entry in enumerate(servers):
        if not isinstance(entry, dict):
            raise InventoryParseError(f"{source}: servers[{index}] must be a mapping", source)

    return Inventory.from_dict(data)


class InventoryPersistence:
    """Load and atomically save the inventory file."""

    def __init__(self, path: PathLike):
        self.path = Path(path)

    def load(self) -> Inventory:
        if not self.path.is_file():
            raise InventoryParseError(f"Inventory file not found: {self.path}", str(self.path))
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise InventoryParseError(f"Cannot read {self.path}: {e}", str(self.path)) from e

        inventory = parse_inventory(text, str(self.path))
        logger.debug(f"Loaded {len(inventory)} server(s) from {self.path}")
        return inventory

    def save(self, inventory: Inventory) -> None:
        atomic_write_text(self.path, dump_inventory(inventory))
        logger.debug(f"Saved {len(inventory)} server(s) to {self.path}")


def load_inventory(path: PathLike) -> Inventory:
    return InventoryPersistence(path).load()


def persist_inventory(inventory: Inventory, path: PathLike) -> None:
    InventoryPersistence(path).save(inventory)
