"""Main entry point for ConceptVault when run as a module.

This module allows running the ConceptVault package directly with:
python -m conceptvault [config.yaml]

It loads the configuration, opens the owner's knowledge graph and prints the
navigation tree.
"""

import logging
import sys
from logging.handlers import MemoryHandler, RotatingFileHandler
from pathlib import Path

from conceptvault.api_client import LLMClient
from conceptvault.config import load_config
from conceptvault.controller import KnowledgeVault
from conceptvault.exceptions import ConceptVaultError
from conceptvault.models import Folder
from conceptvault.tree_projector import category_folder_id

logger = logging.getLogger(__name__)


def setup_logging(settings: dict) -> None:
    """Configure console and rotating file logging."""
    log_dir = Path(settings.get("log_dir", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, str(settings.get("level", "INFO")).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            RotatingFileHandler(log_dir / "conceptvault.log", maxBytes=1_000_000, backupCount=3)
        ]
    )


def buffer_early_logging(root: logging.Logger = None) -> MemoryHandler:
    """Hold records logged before the log settings are known."""
    root = root or logging.getLogger()
    early = MemoryHandler(capacity=1000)
    root.addHandler(early)
    root.setLevel(logging.DEBUG)
    return early


def replay_early_logging(early: MemoryHandler, root: logging.Logger = None) -> None:
    """Send held records through the configured handlers, honouring the configured level."""
    root = root or logging.getLogger()
    level = root.getEffectiveLevel()
    for record in early.buffer:
        if record.levelno >= level:
            root.handle(record)
    early.buffer.clear()


def start_logging(settings: dict, early: MemoryHandler) -> None:
    logging.getLogger().removeHandler(early)
    setup_logging(settings)
    replay_early_logging(early)


def format_tree(items, hidden_categories=frozenset(), depth: int = 0) -> list:
    """Render the hierarchy as indented lines, leaving out hidden categories."""
    hidden_ids = {category_folder_id(category) for category in hidden_categories}
    lines = []
    for item in items:
        indent = "  " * depth
        if isinstance(item, Folder):
            if item.id in hidden_ids:
                continue
            marker = "-" if item.is_open else "+"
            lines.append(f"{indent}{marker} {item.name} ({len(item.children)})")
            if item.is_open:
                lines.extend(format_tree(item.children, hidden_categories, depth + 1))
        else:
            lines.append(f"{indent}  {item.name}")
    return lines


def main(argv=None):
    """Main entry point for the application."""
    argv = sys.argv[1:] if argv is None else argv
    config_path = argv[0] if argv else "config.yaml"

    early = buffer_early_logging()
    try:
        config = load_config(config_path)
    except Exception as e:
        start_logging({}, early)
        logger.error(f"Failed to load configuration: {e}")
        print(f"Error: {e}")
        sys.exit(1)
    start_logging(config.get("logging", {}), early)

    try:
        llm_client = None
        try:
            llm_client = LLMClient(config)
        except ConceptVaultError as e:
            logger.warning(f"LLM services disabled: {e}")

        vault = KnowledgeVault.from_config(config, llm_client=llm_client)
        logger.info(
            f"Opened knowledge graph with {len(vault.store)} concepts, {len(vault.visible_nodes())} visible"
        )
        print("\n".join(format_tree(vault.tree, vault.hidden_categories)))
    except Exception as e:
        logger.error(f"Application error: {e}")
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
