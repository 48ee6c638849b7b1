# tables/management/commands/sync_search_index.py

from django.core.management.base import BaseCommand, CommandError

from tables.exceptions import SearchUnavailable
from tables.indexing import rebuild_index, search_indexing_enabled
from tables.resources import all_schemas, get_schema
from tables.search import get_search_provider


class Command(BaseCommand):
    help = "Rebuild the search index of every table resource (or only those named)"

    def add_arguments(self, parser):
        parser.add_argument("resources", nargs="*", help="Resource names, e.g. users roles")
        parser.add_argument("--batch-size", type=int, default=500)

    def handle(self, *args, **options):
        if not search_indexing_enabled():
            raise CommandError("SEARCH_BACKEND is not 'meilisearch'; there is no index to sync.")

        try:
            schemas = [get_schema(name) for name in options["resources"]] or all_schemas()
        except LookupError as exc:
            raise CommandError(str(exc))

        provider = get_search_provider()
        for schema in schemas:
            try:
                count = rebuild_index(schema, provider, batch_size=options["batch_size"])
            except SearchUnavailable as exc:
                raise CommandError(f"{schema.name}: search engine unreachable ({exc.detail})") from exc
            self.stdout.write(f"{schema.name}: indexed {count} records")

        self.stdout.write(self.style.SUCCESS("Done!"))
