from django.contrib.auth.models import AnonymousUser
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from boltbase.auth import resolve
from boltbase.errors import Unauthorized


class StoreCredentialAuthentication(BaseAuthentication):
    """
    Resolve the ``Authorization`` header against the credentials in the store.

    On success ``request.auth`` is the AuthResult. Unknown tokens and expired
    API keys answer 401; store failures propagate to the exception handler.
    """

    def authenticate(self, request):
        token = get_authorization_header(request).decode("latin-1")
        try:
            return AnonymousUser(), resolve(token)
        except Unauthorized as exc:
            raise exceptions.AuthenticationFailed(str(exc)) from exc

    def authenticate_header(self, request):
        return 'Basic realm="boltbase"'
