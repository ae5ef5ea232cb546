from rest_framework import authentication, exceptions

from core.services.auth_service import AuthService


class JWTAuthentication(authentication.BaseAuthentication):
    keyword = 'Bearer'

    def authenticate(self, request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None

        if len(header) != 2:
            raise exceptions.AuthenticationFailed('Invalid authorization header')

        try:
            token = header[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid token')

        user = AuthService.verify_token(token)
        if user is None:
            raise exceptions.AuthenticationFailed('Invalid or expired token')
        if not user.is_active:
            raise exceptions.AuthenticationFailed('Account suspended')

        return user, token

    def authenticate_header(self, request):
        return self.keyword
