"""Site-wide visitor counter, kept under the site-data document."""

import logging

from blog_common.schemas import SITE_DATA_ID, VisitorStats
from blog_server.db.paths import site_data_path, visitor_counter_path, visitor_path
from blog_server.db.store import DocumentStore, Increment, ServerTimestamp

logger = logging.getLogger(__name__)

SITE_DATA = {
    "title": "Site Data",
    "subtitle": "Technical document for site metrics",
    "content": "This document stores site-wide data and metrics.",
}


class VisitorCounter:
    """Counts distinct visitor IPs; each IP also keeps its own visit count."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def record_visit(self, ip: str) -> VisitorStats:
        with self.store.transaction() as tx:
            if tx.get(site_data_path()) is None:
                tx.set(site_data_path(), {**SITE_DATA, "created_at": ServerTimestamp()})

            visitor = tx.get(visitor_path(ip))
            first_visit = visitor is None
            if first_visit:
                tx.set(visitor_path(ip), {"first_visit": ServerTimestamp(), "visits": 1})
                tx.set(visitor_counter_path(), {"count": Increment(1)}, merge=True)
                visits = 1
            else:
                tx.update(visitor_path(ip), {
                    "last_visit": ServerTimestamp(),
                    "visits": Increment(1),
                })
                visits = visitor.data.get("visits", 0) + 1

            counter = tx.get(visitor_counter_path())
            count = counter.data.get("count", 0) if counter else 0

        if first_visit:
            logger.info("New visitor recorded on %s, total %d", SITE_DATA_ID, count)
        return VisitorStats(count=count, first_visit=first_visit, visits=visits)

    async def count(self) -> int:
        counter = self.store.get(visitor_counter_path())
        if counter is None:
            return 0
        return counter.data.get("count", 0)
