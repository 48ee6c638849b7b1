# tables/indexing.py
"""
Keep search indexes in step with the database.

Only active when settings.TABLES["SEARCH_BACKEND"] is "meilisearch"; the
database provider reads the tables directly and needs no index.

Documents are pushed after the surrounding transaction commits. If the
search service is down the write still succeeds and the failure is logged;
`manage.py sync_search_index` rebuilds an index from scratch.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import m2m_changed, post_delete, post_save

from .exceptions import SearchUnavailable
from .resources import all_schemas
from .search import MeilisearchSearchProvider, get_search_provider

logger = logging.getLogger(__name__)

M2M_SYNC_ACTIONS = ("post_add", "post_remove", "post_clear")


def search_indexing_enabled() -> bool:
    return settings.TABLES["SEARCH_BACKEND"] == "meilisearch"


def index_records(schema, records, provider=None) -> int:
    provider = provider or get_search_provider()
    documents = [schema.to_document(record) for record in records]
    provider.add_documents(schema, documents)
    return len(documents)


def remove_records(schema, ids, provider=None) -> None:
    provider = provider or get_search_provider()
    provider.delete_documents(schema, list(ids))


def rebuild_index(schema, provider: MeilisearchSearchProvider, batch_size: int = 500) -> int:
    """Configure the resource index and push every record (all workspaces)."""
    provider.configure_index(schema)
    count = 0
    batch = []
    for record in schema.model._default_manager.order_by("pk").iterator(chunk_size=batch_size):
        batch.append(record)
        if len(batch) >= batch_size:
            count += index_records(schema, batch, provider)
            batch = []
    if batch:
        count += index_records(schema, batch, provider)
    return count


def _sync(schema, record_id, deleted: bool) -> None:
    try:
        if deleted:
            remove_records(schema, [record_id])
        else:
            record = schema.model._default_manager.filter(pk=record_id).first()
            if record is not None:
                index_records(schema, [record])
    except SearchUnavailable:
        logger.error(
            "Search index out of date; run sync_search_index",
            extra={"resource": schema.name, "record_id": record_id},
        )


def connect_signals() -> None:
    """Wire save/delete/m2m signals of every registered schema model to index updates."""
    if not search_indexing_enabled():
        return

    for schema in all_schemas():
        model = schema.model

        def on_save(sender, instance, schema=schema, **kwargs):
            transaction.on_commit(lambda: _sync(schema, instance.pk, deleted=False))

        def on_delete(sender, instance, schema=schema, **kwargs):
            record_id = instance.pk
            transaction.on_commit(lambda: _sync(schema, record_id, deleted=True))

        def on_m2m(sender, instance, action, schema=schema, **kwargs):
            if action in M2M_SYNC_ACTIONS and isinstance(instance, schema.model):
                transaction.on_commit(lambda: _sync(schema, instance.pk, deleted=False))

        post_save.connect(on_save, sender=model, weak=False, dispatch_uid=f"tables.index.save.{schema.name}")
        post_delete.connect(on_delete, sender=model, weak=False, dispatch_uid=f"tables.index.delete.{schema.name}")
        for field in model._meta.many_to_many:
            m2m_changed.connect(
                on_m2m,
                sender=field.remote_field.through,
                weak=False,
                dispatch_uid=f"tables.index.m2m.{schema.name}.{field.name}",
            )
