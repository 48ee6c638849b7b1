"""
Record store: full records by identifier, in no particular order.

The store is never asked to order anything. Callers re-order by the search
provider's id list, which is authoritative.
"""
import logging

from django.db import DatabaseError

logger = logging.getLogger(__name__)


class RecordStore:
    """Fetch records through the resource schema's tenant-scoped queryset."""

    chunk_size = 500

    def fetch(self, schema, ids, context) -> dict:
        """
        Return {id: record} for the ids that exist in the caller's workspace.

        Ids from another tenant, deleted records and chunks whose lookup fails
        are simply absent from the result.
        """
        ids = list(ids)
        records = {}
        for start in range(0, len(ids), self.chunk_size):
            chunk = ids[start:start + self.chunk_size]
            try:
                for record in schema.record_queryset(context).filter(pk__in=chunk):
                    records[record.pk] = record
            except DatabaseError as exc:
                logger.warning(
                    "Record lookup failed for chunk; continuing with the rest",
                    extra={"resource": schema.name, "chunk_size": len(chunk), "error": str(exc)},
                )
        return records
