"""In-memory session storage for the protocol client."""

import threading


class Store:
    """Simple thread-safe key-value store for protocol session state.

    A missing key reads as an empty string. Values live as long as the
    store itself; there is no expiry.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str:
        """Retrieve a value from the store."""
        with self._lock:
            return self._values.get(key, "")

    def set(self, key: str, value: str) -> None:
        """Set a value in the store."""
        with self._lock:
            self._values[key] = value

    # Item-style names used by some OIDC client libraries
    get_item = get
    set_item = set
