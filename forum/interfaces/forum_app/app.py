import secrets
from typing import Any, Dict, Optional

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from forum.utils.config_access import get_rbac_config, load_config
from forum.utils.content_service import ContentService
from forum.utils.env import read_secret
from forum.utils.errors import ForumError, ValidationError
from forum.utils.logging import get_logger, setup_logging
from forum.utils.rbac.decorators import (
    get_current_user,
    require_authenticated,
    require_minimum_role,
    require_permission,
    require_role,
)
from forum.utils.rbac.middleware import RequestGate
from forum.utils.rbac.permission_enum import Permission
from forum.utils.rbac.permissions import get_permission_context
from forum.utils.rbac.registry import RBACRegistry, set_registry
from forum.utils.rbac.roles import Role
from forum.utils.security_log import SecurityLogService
from forum.utils.user_service import UserService

logger = get_logger(__name__)


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


class FlaskAppWrapper(object):

    def __init__(
        self,
        app: Flask,
        config: Optional[Dict[str, Any]] = None,
        user_service: Optional[UserService] = None,
        content_service: Optional[ContentService] = None,
        registry: Optional[RBACRegistry] = None,
        jwt_secret: Optional[str] = None,
    ):
        logger.info("Entering FlaskAppWrapper")
        self.app = app
        self.config = config or load_config()
        self.app_config = self.config.get('app', {})
        self.auth_config = self.config.get('auth', {})

        secret_key = read_secret("FLASK_SECRET_KEY")
        if not secret_key:
            logger.warning("FLASK_SECRET_KEY not found, generating a random secret key")
            secret_key = secrets.token_hex(32)
        self.app.secret_key = secret_key
        self.app.config['SESSION_COOKIE_HTTPONLY'] = True
        self.app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

        self.jwt_secret = jwt_secret or read_secret("JWT_SECRET")
        if not self.jwt_secret:
            logger.error("JWT_SECRET is not set; every protected request will be rejected")

        # Route access configuration is fixed for the life of the process
        self.registry = registry or RBACRegistry(get_rbac_config(self.config))
        set_registry(self.registry)

        self.users = user_service or UserService(security_log=SecurityLogService())
        self.security_log = self.users.security_log
        self.content = content_service or ContentService(security_log=self.security_log)

        seed_users = (self.config.get('seed') or {}).get('users') or []
        if seed_users:
            self.users.seed_users(seed_users)
            logger.info(f"Seeded {len(seed_users)} users from config")

        CORS(self.app)

        self.gate = RequestGate(
            self.app,
            registry=self.registry,
            secret=self.jwt_secret,
            algorithms=(self.auth_config.get('algorithm', 'HS256'),),
        )
        self.app.register_error_handler(ForumError, self.handle_forum_error)
        self.app.extensions['forum'] = self

        # Public endpoints
        self.add_endpoint('/api/health', 'health', self.health, methods=["GET"])
        self.add_endpoint('/login', 'login', self.login, methods=["GET"])
        self.add_endpoint('/forums', 'forums_page', self.forums_page, methods=["GET"])

        # Dashboards (the gate checks the route table first)
        self.add_endpoint('/admin', 'admin_dashboard', require_role(Role.ADMIN)(self.admin_dashboard))
        self.add_endpoint('/moderator', 'moderator_dashboard', require_minimum_role(Role.MODERATOR)(self.moderator_dashboard))

        # Users
        self.add_endpoint('/api/me', 'me', require_authenticated(self.me), methods=["GET"])
        self.add_endpoint('/api/users', 'list_users', require_permission(Permission.Users.VIEW)(self.list_users), methods=["GET"])
        self.add_endpoint('/api/users/<user_id>', 'get_user', require_permission(Permission.Users.VIEW_DETAILS)(self.get_user), methods=["GET"])
        self.add_endpoint('/api/users/<user_id>/role', 'change_user_role', require_authenticated(self.change_user_role), methods=["PATCH"])

        # Forums
        self.add_endpoint('/api/forums', 'list_forums', self.list_forums, methods=["GET"])
        self.add_endpoint('/api/forums', 'create_forum', self.create_forum, methods=["POST"])
        self.add_endpoint('/api/forums/<forum_id>', 'get_forum', self.get_forum, methods=["GET"])
        self.add_endpoint('/api/forums/<forum_id>', 'update_forum', self.update_forum, methods=["PUT"])
        self.add_endpoint('/api/forums/<forum_id>', 'delete_forum', self.delete_forum, methods=["DELETE"])
        self.add_endpoint('/api/forums/<forum_id>/lock', 'lock_forum', self.lock_forum, methods=["PATCH"])
        self.add_endpoint('/api/forums/<forum_id>/threads', 'list_threads', self.list_threads, methods=["GET"])
        self.add_endpoint('/api/forums/<forum_id>/threads', 'create_thread', self.create_thread, methods=["POST"])

        # Threads and replies
        self.add_endpoint('/api/threads/<thread_id>', 'get_thread', self.get_thread, methods=["GET"])
        self.add_endpoint('/api/threads/<thread_id>', 'update_thread', self.update_thread, methods=["PUT"])
        self.add_endpoint('/api/threads/<thread_id>', 'delete_thread', self.delete_thread, methods=["DELETE"])
        self.add_endpoint('/api/threads/<thread_id>/lock', 'lock_thread', self.lock_thread, methods=["PATCH"])
        self.add_endpoint('/api/threads/<thread_id>/replies', 'list_replies', self.list_replies, methods=["GET"])
        self.add_endpoint('/api/threads/<thread_id>/replies', 'create_reply', self.create_reply, methods=["POST"])
        self.add_endpoint('/api/replies/<reply_id>', 'update_reply', require_authenticated(self.update_reply), methods=["PUT"])
        self.add_endpoint('/api/replies/<reply_id>', 'delete_reply', require_authenticated(self.delete_reply), methods=["DELETE"])

        # Security log
        self.add_endpoint('/api/logs', 'list_logs', require_permission(Permission.System.VIEW_LOGS)(self.list_logs), methods=["GET"])

    def add_endpoint(self, endpoint=None, endpoint_name=None, handler=None, methods=['GET'], *args, **kwargs):
        self.app.add_url_rule(endpoint, endpoint_name, handler, methods=methods, *args, **kwargs)

    def run(self, **kwargs):
        self.app.run(**kwargs)

    def handle_forum_error(self, error: ForumError):
        if error.status_code >= 500:
            logger.error(f"Unhandled service error on {request.path}: {error.message}")
            return jsonify({'error': 'Internal server error'}), error.status_code
        return jsonify(error.to_dict()), error.status_code

    # ------------------------------------------------------------------
    # Public pages
    # ------------------------------------------------------------------

    def health(self):
        return jsonify({"status": "OK"}), 200

    def login(self):
        """Login entry point. Credentials are handled by the auth service."""
        return jsonify({
            'message': 'Please log in to continue',
            'redirect': request.args.get('redirect', '/forums'),
        }), 200

    def forums_page(self):
        return jsonify({'forums': [f.to_dict() for f in self.content.list_forums()]}), 200

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    def admin_dashboard(self):
        users = self.users.list_users()
        by_role = {role.value: 0 for role in Role}
        for user in users:
            by_role[user.role] = by_role.get(user.role, 0) + 1
        return jsonify({
            'users': len(users),
            'users_by_role': by_role,
            'security_events': len(self.security_log),
            'navigation': get_permission_context(get_current_user()),
        }), 200

    def moderator_dashboard(self):
        forums = self.content.list_forums()
        return jsonify({
            'forums': len(forums),
            'locked_forums': [f.id for f in forums if f.locked],
            'navigation': get_permission_context(get_current_user()),
        }), 200

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def me(self):
        user = get_current_user()
        return jsonify({'user': g.forwarded_user, 'permissions': get_permission_context(user)}), 200

    def list_users(self):
        role = request.args.get('role')
        return jsonify({'users': [u.public_dict() for u in self.users.list_users(role=role)]}), 200

    def get_user(self, user_id):
        user = self.users.get_user(user_id)
        if user is None:
            return jsonify({'error': 'User not found'}), 404
        return jsonify({'user': user.public_dict()}), 200

    def change_user_role(self, user_id):
        """
        PATCH /api/users/<id>/role  {"new_role": "moderator"}

        Requires change_user_role; the checks themselves live in
        UserService.change_role.
        """
        payload = _json_body()
        new_role = payload.get('new_role', payload.get('newRole'))
        updated = self.users.change_role(
            acting_user_id=g.user.id,
            target_user_id=user_id,
            new_role=new_role,
            ip_address=request.headers.get('X-Forwarded-For', 'unknown'),
            user_agent=request.headers.get('User-Agent', 'unknown'),
        )
        return jsonify({'success': True, 'user': updated.public_dict()}), 200

    # ------------------------------------------------------------------
    # Forums
    # ------------------------------------------------------------------

    def list_forums(self):
        return jsonify({'forums': [f.to_dict() for f in self.content.list_forums()]}), 200

    def create_forum(self):
        payload = _json_body()
        forum = self.content.create_forum(g.user, payload.get('title'), payload.get('description', ''))
        return jsonify({'success': True, 'data': forum.to_dict()}), 201

    def get_forum(self, forum_id):
        return jsonify({'data': self.content.get_forum(forum_id).to_dict()}), 200

    def update_forum(self, forum_id):
        payload = _json_body()
        forum = self.content.update_forum(g.user, forum_id, title=payload.get('title'),
                                          description=payload.get('description'))
        return jsonify({'success': True, 'data': forum.to_dict()}), 200

    def delete_forum(self, forum_id):
        self.content.delete_forum(g.user, forum_id)
        return jsonify({'success': True}), 200

    def lock_forum(self, forum_id):
        payload = _json_body()
        forum = self.content.lock_forum(g.user, forum_id, payload.get('lock', True))
        return jsonify({'success': True, 'data': forum.to_dict()}), 200

    def list_threads(self, forum_id):
        return jsonify({'threads': [t.to_dict() for t in self.content.list_threads(forum_id)]}), 200

    def create_thread(self, forum_id):
        payload = _json_body()
        thread = self.content.create_thread(g.user, forum_id, payload.get('title'), payload.get('body', ''))
        return jsonify({'success': True, 'data': thread.to_dict()}), 201

    # ------------------------------------------------------------------
    # Threads and replies
    # ------------------------------------------------------------------

    def get_thread(self, thread_id):
        return jsonify({'data': self.content.get_thread(thread_id).to_dict()}), 200

    def update_thread(self, thread_id):
        payload = _json_body()
        thread = self.content.update_thread(g.user, thread_id, title=payload.get('title'),
                                            body=payload.get('body'))
        return jsonify({'success': True, 'data': thread.to_dict()}), 200

    def delete_thread(self, thread_id):
        self.content.delete_thread(g.user, thread_id)
        return jsonify({'success': True}), 200

    def lock_thread(self, thread_id):
        payload = _json_body()
        thread = self.content.lock_thread(g.user, thread_id, payload.get('lock', True))
        return jsonify({'success': True, 'data': thread.to_dict()}), 200

    def list_replies(self, thread_id):
        return jsonify({'replies': [r.to_dict() for r in self.content.list_replies(thread_id)]}), 200

    def create_reply(self, thread_id):
        payload = _json_body()
        reply = self.content.create_reply(g.user, thread_id, payload.get('body'))
        return jsonify({'success': True, 'data': reply.to_dict()}), 201

    def update_reply(self, reply_id):
        payload = _json_body()
        reply = self.content.update_reply(g.user, reply_id, body=payload.get('body'))
        return jsonify({'success': True, 'data': reply.to_dict()}), 200

    def delete_reply(self, reply_id):
        self.content.delete_reply(g.user, reply_id)
        return jsonify({'success': True}), 200

    # ------------------------------------------------------------------
    # Security log
    # ------------------------------------------------------------------

    def list_logs(self):
        event_type = request.args.get('event_type')
        limit = request.args.get('limit', type=int)
        entries = self.security_log.list_entries(event_type=event_type, limit=limit)
        return jsonify({'logs': [e.to_dict() for e in entries]}), 200


def create_app(config: Optional[Dict[str, Any]] = None, **services) -> Flask:
    """
    Build the forum Flask app.

    Args:
        config: Full forum config (see config_access.load_config)
        services: Optional user_service / content_service / registry /
                  jwt_secret overrides

    Returns:
        Configured Flask app; the wrapper is at app.extensions['forum']
    """
    config = config or load_config()
    setup_logging(verbosity=config.get('app', {}).get('verbosity'))

    app = Flask(__name__)
    FlaskAppWrapper(app, config=config, **services)
    return app
