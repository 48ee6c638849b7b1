from django.urls import path

from .views import WorkspaceCheckView

app_name = "tenant"

urlpatterns = [
    path("check/", WorkspaceCheckView.as_view(), name="check"),
]
