"""
Search indexing queue handlers

Listing search runs directly against the relational store, so there is no
external index to maintain. The handlers validate and log their jobs and
keep the queue contract in place for producers.
"""

from __future__ import annotations

import logging
from typing import Dict

from apps.core import queues
from shared.jobs.job import Job

logger = logging.getLogger(__name__)

OPERATIONS = ("index", "update", "delete")


class SearchIndexer:
    def register(self, queue) -> None:
        queue.register_handler(queues.SEARCH_INDEXING, queues.INDEX_LISTING, self.index_listing)
        queue.register_handler(queues.SEARCH_INDEXING, queues.REINDEX_ALL, self.reindex_all)

    def index_listing(self, job: Job) -> Dict[str, str]:
        listing_id = job.payload["listing_id"]
        operation = job.payload.get("operation", "index")
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown index operation: {operation}")
        logger.info(f"Search index {operation} for listing {listing_id}: served by database search")
        return {"listing_id": listing_id, "operation": operation}

    def reindex_all(self, job: Job) -> Dict[str, int]:
        batch_size = int(job.payload.get("batch_size", 500))
        logger.info(f"Search reindex requested (batch size {batch_size}): served by database search")
        return {"batch_size": batch_size}
