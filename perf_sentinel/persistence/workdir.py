"""Working directory for transient report files."""

import logging
from pathlib import Path
from typing import Iterable, List, Union

from ..errors import LocalIOError

logger = logging.getLogger(__name__)


class WorkingDirectory:
    """Directory holding report files for the lifetime of one task."""

    def __init__(self, path: Union[str, Path] = "outputs"):
        self.path = Path(path)

    def ensure(self) -> Path:
        """Create the directory if needed.

        Raises:
            LocalIOError: If the directory cannot be created
        """
        if self.path.is_dir():
            return self.path

        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalIOError(f"Error creating directory {self.path}: {e}", path=str(self.path)) from e

        logger.info(f"Directory created: {self.path}")
        return self.path

    def remove(self, paths: Iterable[Path]) -> List[LocalIOError]:
        """Remove files, returning one error per file that could not be removed.

        Files that do not exist are skipped silently.
        """
        errors = []
        for path in paths:
            try:
                Path(path).unlink()
                logger.info(f"Local file deleted: {path}")
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Error deleting local file {path}: {e}")
                errors.append(LocalIOError(f"Error deleting local file: {e}", path=str(path)))
        return errors
