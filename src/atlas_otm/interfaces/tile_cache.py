from abc import ABC, abstractmethod
from typing import Dict, Any


class ITileFetcher(ABC):
    """Interface for upstream tile fetchers"""

    @abstractmethod
    def fetch_tile(self, zoom: int, x: int, y: int) -> bytes:
        """Return the raw bytes of a tile"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release network resources"""
        pass


class IProgressSink(ABC):
    """Receives pipeline events (console, log file, HTTP stream)"""

    @abstractmethod
    def emit(self, event) -> None:
        """Handle a progress, error or summary event"""
        pass


class IConfigLoader(ABC):
    """Interface for configuration loading"""

    @abstractmethod
    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Load configuration from file"""
        pass

    @abstractmethod
    def validate_config(self, config: Dict[str, Any]) -> bool:
        """Validate configuration"""
        pass
