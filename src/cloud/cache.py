"""Per-cluster cache of backend clients."""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class CloudCache:
    """Holds one backend client per description string.

    get_or_create() calls the creator at most once per description, even
    when several nodes create their uplinks at the same time.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._clouds: dict = {}
        self._closed = False

    def get_or_create(self, description: str, creator: Callable[[], object]):
        """Return the cached client for description, creating it if needed.

        Raises:
            RuntimeError: If the cache is closed
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("The cloud cache is closed.")
            cloud = self._clouds.get(description)
            if cloud is None:
                logger.debug(f"Creating cloud {description}")
                cloud = creator()
                self._clouds[description] = cloud
            return cloud

    def close(self) -> None:
        """Close every cached client once. Later calls do nothing.

        A client that fails to close does not stop the others from closing.

        Raises:
            Exception: The first error raised by a client's close()
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            clouds = list(self._clouds.items())
            self._clouds.clear()
        first_error = None
        for description, cloud in clouds:
            logger.debug(f"Closing cloud {description}")
            try:
                cloud.close()
            except Exception as e:
                logger.error(f"Error closing cloud {description}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
