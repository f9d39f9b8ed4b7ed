"""
JSON file persistence for the knowledge snapshot.
"""

import json
import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Optional

from .logging_config import get_logger

logger = get_logger(__name__)


class KnowledgeStoreError(Exception):
    """Custom exception for knowledge snapshot read/write errors."""
    pass


class KnowledgeStore:
    """Reads and writes `{learnedFacts, memoryStats, lastSaved}` documents."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[Dict[str, Dict[str, str]]]:
        """Return the stored `learnedFacts` snapshot, or None when no file exists.

        Raises:
            KnowledgeStoreError: If the file exists but cannot be read or parsed
        """
        if not os.path.exists(self.path):
            logger.info(f'No knowledge file at {self.path}, starting fresh')
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise KnowledgeStoreError(f'Failed to read knowledge file {self.path}: {e}')

        if not isinstance(document, dict):
            raise KnowledgeStoreError(f'Knowledge file {self.path} does not hold a JSON object')

        learned_facts = document.get('learnedFacts') or {}
        if not isinstance(learned_facts, dict):
            raise KnowledgeStoreError(f'learnedFacts in {self.path} is not an object')
        return learned_facts

    def save(self, snapshot: Dict[str, Dict[str, str]], stats: Dict[str, Any]) -> None:
        """Write the snapshot atomically (temp file + rename).

        Raises:
            KnowledgeStoreError: If the file cannot be written
        """
        document = {'learnedFacts': snapshot, 'memoryStats': stats, 'lastSaved': datetime.now().isoformat()}
        directory = os.path.dirname(os.path.abspath(self.path))

        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.knowledge-', suffix='.json')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(document, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise KnowledgeStoreError(f'Failed to write knowledge file {self.path}: {e}')

        logger.debug(f'Saved knowledge snapshot to {self.path}')
