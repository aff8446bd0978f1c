"""File access for statement CSV files."""

import logging
import os
from pathlib import Path

from .exceptions import FileAccessError

logger = logging.getLogger(__name__)


class FileStore:
    """Reads, writes and lists text files relative to a base directory."""

    def __init__(self, base_dir: Path, encoding: str = "utf-8"):
        """Initialize the store."""
        self.base_dir = Path(base_dir)
        self.encoding = encoding

    def resolve(self, relative_path: str) -> Path:
        """Absolute path of a file inside the store."""
        return self.base_dir / relative_path

    def read_text(self, relative_path: str) -> str:
        """
        Read a whole file.

        Raises:
            FileAccessError: If the file is missing or unreadable
        """
        path = self.resolve(relative_path)
        try:
            with open(path, encoding=self.encoding, newline="") as handle:
                content = handle.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read {path}: {e}")
            raise FileAccessError("read", str(path), f"Failed to read {path}: {e}") from e

        logger.debug(f"Read {path} ({len(content)} chars)")
        return content

    def write_text(self, relative_path: str, content: str) -> None:
        """
        Write a whole file atomically, creating parent folders as needed.

        The content goes to a temporary sibling first and replaces the target
        only once fully written.

        Raises:
            FileAccessError: If the file cannot be written
        """
        path = self.resolve(relative_path)
        tmp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding=self.encoding, newline="") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            logger.error(f"Failed to write {path}: {e}")
            raise FileAccessError("write", str(path), f"Failed to write {path}: {e}") from e

        logger.info(f"Wrote {path} ({len(content.encode(self.encoding)) / 1024:.2f} KB)")

    def list_files(self, relative_dir: str) -> list[str]:
        """
        List the file names of a folder, sorted by name.

        Raises:
            FileAccessError: If the folder is missing or unreadable
        """
        path = self.resolve(relative_dir)
        try:
            names = sorted(entry.name for entry in path.iterdir() if entry.is_file())
        except OSError as e:
            logger.error(f"Failed to list {path}: {e}")
            raise FileAccessError("list", str(path), f"Failed to list {path}: {e}") from e

        logger.debug(f"Listed {path} ({len(names)} files)")
        return names
