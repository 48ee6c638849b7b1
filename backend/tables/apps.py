from django.apps import AppConfig


class TablesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "tables"
    verbose_name = "Data Tables & Exports"

    def ready(self):
        # Schemas are registered by the apps that own them (accounts.ready runs first).
        from tables import indexing

        indexing.connect_signals()
