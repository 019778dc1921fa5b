import pytest

from apps.core import queues
from apps.listings.indexer import SearchIndexer


def test_index_jobs_are_accepted_for_known_operations(queue, make_job):
    indexer = SearchIndexer()
    indexer.register(queue)

    assert queue.has_handler(queues.SEARCH_INDEXING, queues.INDEX_LISTING)
    assert queue.has_handler(queues.SEARCH_INDEXING, queues.REINDEX_ALL)
    assert indexer.index_listing(make_job({"listing_id": "l-1", "operation": "delete"})) == {
        "listing_id": "l-1",
        "operation": "delete",
    }
    assert indexer.reindex_all(make_job({})) == {"batch_size": 500}


def test_unknown_index_operation_is_rejected(make_job):
    with pytest.raises(ValueError):
        SearchIndexer().index_listing(make_job({"listing_id": "l-1", "operation": "purge"}))
