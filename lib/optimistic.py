import copy
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator

logger = logging.getLogger(__name__)

@contextmanager
def optimistic_update(record: Dict[str, Any], changes: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Apply ``changes`` to ``record`` in place for the duration of a remote write.

    The body of the ``with`` block performs the remote write. If it raises,
    ``record`` is restored to exactly its pre-mutation contents and the error
    is re-raised, so in-memory copies never drift from the store.
    """
    snapshot = copy.deepcopy(record)
    record.update(changes)
    try:
        yield record
    except Exception:
        logger.info(f"Reverting optimistic update of {record.get('id')}")
        record.clear()
        record.update(snapshot)
        raise
