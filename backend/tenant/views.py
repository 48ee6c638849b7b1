from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView


class WorkspaceCheckView(APIView):
    """
    GET /api/check/ -> workspace health check

    Used by the dashboard to verify that a workspace exists before showing the
    login form. Unknown hosts never reach this view (the middleware answers 404).
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        ctx = request.tenant
        return Response({
            "message": "Workspace active",
            "context": ctx.label,
            "guard": ctx.guard,
        })
