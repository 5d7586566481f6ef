import contextlib
import os
import tempfile


CACHE_DIR_NAME = "AtlasOSMTiles"
TILE_EXTENSION = "png"


class FileUtils:
    """Utility class for tile cache file operations"""

    @staticmethod
    def default_cache_root() -> str:
        return os.path.join(os.path.expanduser("~"), CACHE_DIR_NAME)

    @staticmethod
    def tier_directory(cache_root: str, tier_name: str) -> str:
        return os.path.join(cache_root, tier_name)

    @staticmethod
    def tile_filename(tier_name: str, x: int, y: int) -> str:
        return f"{tier_name}_{x}_{y}.{TILE_EXTENSION}"

    @staticmethod
    def resolve_path(cache_root: str, tier_name: str, x: int, y: int) -> str:
        """Generate tile file path: <root>/<tier>/<tier>_<x>_<y>.png"""
        return os.path.join(FileUtils.tier_directory(cache_root, tier_name),
                            FileUtils.tile_filename(tier_name, x, y))

    @staticmethod
    def ensure_directory(cache_root: str, tier_name: str) -> str:
        """Create the tier directory if it doesn't exist"""
        directory = FileUtils.tier_directory(cache_root, tier_name)
        os.makedirs(directory, exist_ok=True)
        return directory

    @staticmethod
    def write_tile(file_path: str, content: bytes) -> int:
        """Write tile bytes, replacing any previous file.

        The bytes go to a temporary file in the same directory which is then
        renamed over file_path, so a failed write leaves the old tile intact.
        """
        directory, name = os.path.split(file_path)
        fd, temp_path = tempfile.mkstemp(prefix=f".{name}.", suffix=".part", dir=directory or ".")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(temp_path, file_path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.remove(temp_path)
            raise
        return len(content)
