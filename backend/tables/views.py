# tables/views.py
"""
Generic list and export views for registered table resources.

Views handle: HTTP parsing, authentication, response formatting.
The resolver and formatter handle everything else, and receive the
caller's tenant context explicitly.

Subclasses (see accounts/views.py) only set `schema_name` and, where
needed, add resource-specific metadata.
"""
import logging

from django.conf import settings
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor
from ops.metrics import record_export, record_table_request

from .exports import ExportFormatter, create_export_response, parse_export_type
from .query import parse_query
from .resolver import RowResolver
from .resources import get_schema
from .search import get_search_provider
from .store import RecordStore

logger = logging.getLogger(__name__)

TRUE_VALUES = ("1", "true", "yes")


class ResourceTableMixin:
    permission_classes = [IsAuthenticated]
    schema_name = None

    def get_schema(self):
        return get_schema(self.schema_name)

    def get_resolver(self) -> RowResolver:
        return RowResolver(get_search_provider(), RecordStore())

    def context_meta(self, actor) -> dict:
        return {
            "context": actor.tenant.label,
            "guard": actor.tenant.guard,
            "type": actor.tenant.user_type,
        }


class ResourceListView(ResourceTableMixin, APIView):
    """
    GET /api/<resource>/ -> one page of resolved rows

    Response:
        {"meta": {"total", "page", "page_size", "context", "guard", ...}, "<resource>": [row, ...]}

    With ids_only=1 the ordered ids of the whole filtered result are returned
    instead ({"meta": {"total", "matched", "truncated"}, "ids": [...]}), for
    select-across. The list is capped at TABLES["FILE_ROW_CAP"].
    """

    def extra_meta(self, actor) -> dict:
        return {}

    def get(self, request):
        actor = resolve_actor(request)
        schema = self.get_schema()
        query = parse_query(request.query_params, schema)
        resolver = self.get_resolver()

        if request.query_params.get("ids_only", "").lower() in TRUE_VALUES:
            resolved = resolver.resolve_ids(schema, query, actor.tenant, limit=settings.TABLES["FILE_ROW_CAP"])
            record_table_request(schema.name, "ids")
            meta = {"total": len(resolved.ids), "matched": resolved.total, "truncated": resolved.truncated}
            return Response({"meta": meta, "ids": resolved.ids})

        page = resolver.resolve(schema, query, actor.tenant)
        record_table_request(schema.name, "list")
        meta = {
            "total": page.total,
            "page": query.page,
            "page_size": query.page_size,
            **self.context_meta(actor),
            **self.extra_meta(actor),
        }
        return Response({"meta": meta, schema.name: page.rows})


class ResourceExportView(ResourceTableMixin, APIView):
    """
    GET /api/<resource>/export/?type=csv|excel|xlsx|pdf|print|copy

    Accepts every list query param. `ids` switches to the explicit scope.
    Files are returned as attachments; print/copy return a JSON payload.
    """

    def get(self, request):
        # Reject unsupported types before doing any work.
        kind = parse_export_type(request.query_params.get("type"))

        actor = resolve_actor(request)
        schema = self.get_schema()
        query = parse_query(request.query_params, schema)

        formatter = ExportFormatter.from_settings()
        resolved = self.get_resolver().resolve_all(
            schema, query, actor.tenant, limit=formatter.cap_for(kind)
        )
        artifact = formatter.format(resolved.rows, kind, schema, total=resolved.total)
        record_table_request(schema.name, "export")
        record_export(schema.name, kind, artifact.row_count, artifact.truncated)

        logger.info(
            "Export generated",
            extra={
                "resource": schema.name,
                "format": kind,
                "rows": artifact.row_count,
                "total": artifact.total,
                "truncated": artifact.truncated,
                "explicit_ids": query.has_explicit_ids,
                "tenant": actor.tenant.tenant_id,
                "user_id": actor.user.pk,
            },
        )
        return create_export_response(artifact)
