import json
import os
from pathlib import Path
from typing import Any, Iterator, List, Optional

from ..records import iter_raw_records
from ..utils.logger import app_logger


class RecordScanner:
    """Scanner for a directory of extraction output files.

    Each file holds the JSON produced by the per-file extraction step: either
    one record or a list of records. Files are visited in sorted order so a
    rescan feeds the resolver the same batch every time.
    """

    def __init__(self, root_path: Optional[str] = None, extensions: Optional[List[str]] = None):
        if root_path is None:
            self.root_path = Path.cwd().resolve()
        else:
            self.root_path = Path(root_path).resolve()

        self.extensions = {ext.lower() for ext in (extensions or [".json"])}
        self.ignored_dirs = {'.git', '__pycache__', '.pytest_cache'}
        self.logger = app_logger.bind(component="record_scanner")

    def find_files(self) -> List[Path]:
        """Find every record file below the root."""
        self.logger.info(f"Scanning directory: {self.root_path}")

        files = []
        for root, dirs, names in os.walk(self.root_path):
            dirs[:] = sorted(d for d in dirs if d not in self.ignored_dirs)
            for name in sorted(names):
                file_path = Path(root) / name
                if file_path.suffix.lower() in self.extensions:
                    files.append(file_path)

        self.logger.info(f"Found {len(files)} record files")
        return files

    def load_file(self, file_path: Path) -> List[Any]:
        """Load the raw records of one file. Unreadable files yield nothing."""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Error loading record file {file_path}: {e}")
            return []
        return iter_raw_records(payload)

    def scan(self) -> Iterator[Any]:
        """Yield raw records from every file, in file order."""
        for file_path in self.find_files():
            self.logger.debug(f"Loading file: {file_path}")
            yield from self.load_file(file_path)
