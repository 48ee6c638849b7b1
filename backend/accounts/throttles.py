# accounts/throttles.py
"""
Rate limiting for authentication endpoints.

Protects login against brute force attempts.
"""

from rest_framework.throttling import AnonRateThrottle


class LoginThrottle(AnonRateThrottle):
    """
    Rate limit login attempts per client, workspace host and email.

    Default: 10 attempts per minute.
    Configured via settings.REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['login']
    """
    scope = 'login'

    def get_cache_key(self, request, view):
        email = str(request.data.get("email", "")).strip().lower()
        host = request.get_host().split(":", 1)[0].lower()
        ident = f"{self.get_ident(request)}:{host}:{email}"
        return self.cache_format % {"scope": self.scope, "ident": ident}
