"""
Request gate - the single interception point in front of protected routes.

For every request under a protected prefix:
    authenticate -> check the route table -> forward, redirect or reject.

On success the verified identity is placed on flask.g for the handler; the
identity is never read back from ambient session state.
"""

from typing import Optional
from urllib.parse import urlencode

from flask import g, jsonify, redirect, request

from forum.utils.logging import get_logger
from forum.utils.rbac.audit import log_permission_check
from forum.utils.rbac.jwt_parser import REASON_AUTH_REQUIRED, authorize
from forum.utils.rbac.registry import RBACRegistry, get_registry

logger = get_logger(__name__)


def is_api_path(path: str) -> bool:
    return path.startswith('/api/')


class RequestGate:
    """
    Flask extension enforcing authentication and route-level RBAC.

    Usage:
        app = Flask(__name__)
        RequestGate(app, registry=get_registry())
    """

    def __init__(self, app=None, registry: Optional[RBACRegistry] = None,
                 secret: Optional[str] = None, algorithms=('HS256',)):
        self._registry = registry
        self._secret = secret
        self._algorithms = tuple(algorithms)
        if app is not None:
            self.init_app(app)

    @property
    def registry(self) -> RBACRegistry:
        if self._registry is None:
            self._registry = get_registry()
        return self._registry

    def init_app(self, app) -> None:
        app.before_request(self.before_request)
        app.after_request(self.after_request)
        app.extensions['forum_request_gate'] = self

    def before_request(self):
        path = request.path
        g.user = None
        g.forwarded_user = None

        if not self.registry.is_protected_path(path):
            return None

        try:
            return self._gate(path)
        except Exception as e:
            logger.error(f"Request gate error on {path}: {e}", exc_info=True)
            if is_api_path(path):
                return jsonify({'error': 'Internal server error'}), 500
            return redirect(self.registry.login_path)

    def _gate(self, path: str):
        auth_result = authorize(request, self.registry, secret=self._secret, algorithms=self._algorithms)

        if auth_result.public:
            return None

        if not auth_result.authorized:
            log_permission_check(
                user='anonymous',
                permission='authenticated',
                granted=False,
                endpoint=path,
                role=None,
                extra={'reason': auth_result.reason},
            )

            if is_api_path(path):
                status = 401 if auth_result.reason == REASON_AUTH_REQUIRED else 403
                return jsonify({'error': 'Access denied', 'details': auth_result.reason}), status

            login_url = f"{self.registry.login_path}?{urlencode({'redirect': path})}"
            return redirect(login_url)

        user = auth_result.user

        if not self.registry.can_access_route(user, path):
            logger.info(f"Access denied: user={user.username} role={user.role} path={path}")
            log_permission_check(
                user=user.username or user.id,
                permission=f"route:{self.registry.matching_route(path)}",
                granted=False,
                endpoint=path,
                role=user.role,
            )

            if is_api_path(path):
                return jsonify({
                    'error': 'Forbidden',
                    'message': f"Access to {path} requires elevated permissions",
                }), 403

            return redirect(self.registry.forbidden_redirect)

        g.user = user
        g.forwarded_user = user.as_forwarded()
        return None

    def after_request(self, response):
        forwarded = getattr(g, 'forwarded_user', None)
        if forwarded:
            response.headers['X-User-Id'] = forwarded['id'] or ''
            response.headers['X-User-Role'] = forwarded['role'] or ''
            response.headers['X-User-Username'] = forwarded['username'] or ''
        return response
