"""Local filesystem placement of downloaded conversion outputs."""
from pathlib import Path

from cloudconvert.errors import InvalidState


class LocalStorage:
    """Decides where downloaded output files end up on disk."""

    def __init__(self, base_path=None):
        """
        Initialize local storage.

        Args:
            base_path: Default directory for downloads made without an
                explicit path. Defaults to the user's Documents folder.
        """
        if base_path is None:
            base_path = Path.home() / 'Documents'
        self.base_path = Path(base_path).expanduser()

    def resolve_destination(self, download_path, suggested_filename, temporary_path):
        """
        Final location of a finished download.

        Called once the transfer completed and the server's filename is known.
        Any existing file at the returned location is removed.

        Args:
            download_path: Caller supplied file or directory, or None
            suggested_filename: Filename suggested by the server, or None
            temporary_path: Where the transport stored the downloaded bytes

        Returns:
            str: Path the downloaded file should be moved to

        Raises:
            InvalidState: download_path is a directory and no filename is known
        """
        if download_path is not None:
            destination = Path(download_path).expanduser()
            if destination.is_dir():
                if not suggested_filename:
                    raise InvalidState(
                        f"Cannot download into directory {destination}: server sent no filename"
                    )
                destination = destination / suggested_filename
        elif suggested_filename:
            self.base_path.mkdir(parents=True, exist_ok=True)
            destination = self.base_path / suggested_filename
        else:
            # Nothing better to offer; keep the transport's temporary file
            return str(temporary_path)

        self.remove_existing(destination)
        return str(destination)

    def remove_existing(self, file_path):
        """
        Delete a file if present.

        Args:
            file_path: Path to the file

        Returns:
            bool: True if a file was removed
        """
        path = Path(file_path)
        if path.is_file() or path.is_symlink():
            path.unlink()
            return True
        return False
