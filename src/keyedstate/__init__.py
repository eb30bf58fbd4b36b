"""keyedstate: keyed, content-deduplicated reactive value store."""

from importlib.metadata import version as _version

__version__ = _version("keyedstate")

from keyedstate.hashing import UNSET, SerializationError, canonicalize, fingerprint
from keyedstate.scheduler import ManualScheduler, Scheduler, ThreadingScheduler
from keyedstate.binding import Binding
from keyedstate.cell import RELEASE_DELAY, Subscription, ValueCell
from keyedstate.store import (
    Directory,
    Registry,
    cell_for,
    directory,
    get_value,
    registry,
    set_value,
    use_registry,
    use_value,
)
# textual NOT auto-imported — opt-in only

__all__ = [
    "UNSET",
    "SerializationError",
    "canonicalize",
    "fingerprint",
    "Scheduler",
    "ThreadingScheduler",
    "ManualScheduler",
    "Binding",
    "RELEASE_DELAY",
    "Subscription",
    "ValueCell",
    "Registry",
    "Directory",
    "directory",
    "registry",
    "use_registry",
    "cell_for",
    "get_value",
    "set_value",
    "use_value",
]
