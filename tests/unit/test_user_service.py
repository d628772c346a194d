"""
Unit tests for UserService and the role change flow.
"""
import logging
import threading

import pytest

from forum.utils.errors import RoleChangeError, ValidationError
from forum.utils.rbac.roles import Role
from forum.utils.security_log import EVENT_ROLE_UPDATE, SEVERITY_MEDIUM, SecurityLogService
from forum.utils.user_service import UserService


@pytest.fixture
def service():
    service = UserService()
    service.create_user('root', 'root@example.com', 'admin', user_id='a1')
    service.create_user('mod', 'mod@example.com', 'moderator', user_id='m1')
    service.create_user('alice', 'alice@example.com', 'user', user_id='u1')
    return service


# ============================================================================
# Accounts
# ============================================================================

class TestAccounts:
    """Tests for creating and looking up accounts."""

    def test_create_and_lookup(self, service):
        """Test lookups by id and by email."""
        user = service.get_user('u1')
        assert user.username == 'alice'
        assert service.find_by_email('mod@example.com').id == 'm1'
        assert service.get_user(None) is None
        assert service.get_user('nope') is None

    def test_role_member_stored_as_string(self, service):
        """Test a Role member is stored as its name."""
        user = service.create_user('bob', 'bob@example.com', Role.MODERATOR)
        assert user.role == 'moderator'

    def test_duplicate_email(self, service):
        """Test emails are unique."""
        with pytest.raises(ValidationError, match="already exists"):
            service.create_user('alice2', 'alice@example.com')

    def test_invalid_role(self, service):
        """Test an undefined role is rejected."""
        with pytest.raises(ValidationError):
            service.create_user('eve', 'eve@example.com', 'owner')

    def test_missing_fields(self, service):
        with pytest.raises(ValidationError):
            service.create_user('', 'x@example.com')

    def test_list_by_role(self, service):
        """Test filtering the user list by role."""
        assert [u.id for u in service.list_users(role='moderator')] == ['m1']
        assert len(service.list_users()) == 3

    def test_public_dict(self, service):
        """Test the fields exposed by the API."""
        assert service.get_user('u1').public_dict() == {
            '_id': 'u1', 'username': 'alice', 'email': 'alice@example.com', 'role': 'user',
        }


# ============================================================================
# Role changes
# ============================================================================

class TestChangeRole:
    """Tests for UserService.change_role."""

    def test_admin_promotes_user(self, service):
        """Test an admin changes another user's role."""
        updated = service.change_role('a1', 'u1', 'moderator', ip_address='10.0.0.1', user_agent='pytest')
        assert updated.role == 'moderator'
        assert service.get_user('u1').role == 'moderator'

    def test_security_log_entry(self, service):
        """Test the ROLE_UPDATE entry written on success."""
        service.change_role('a1', 'u1', 'admin', ip_address='10.0.0.1')
        [entry] = service.security_log.list_entries(event_type=EVENT_ROLE_UPDATE)
        assert entry.username == 'root'
        assert entry.severity == SEVERITY_MEDIUM
        assert entry.ip_address == '10.0.0.1'
        assert entry.details == {
            'target_user_id': 'u1',
            'target_username': 'alice',
            'old_role': 'user',
            'new_role': 'admin',
            'by': 'root',
        }

    def test_audit_log(self, service, caplog):
        """Test the change reaches the audit logger."""
        with caplog.at_level(logging.INFO, logger='forum.rbac.audit'):
            service.change_role('a1', 'm1', 'user')
        assert any('mod' in r.getMessage() and 'user' in r.getMessage() for r in caplog.records)

    @pytest.mark.parametrize("actor,target,role,status,message", [
        (None, 'u1', 'admin', 401, "Unauthorized"),
        ('ghost', 'u1', 'admin', 401, "Acting user not found"),
        ('m1', 'u1', 'admin', 403, "Forbidden: Insufficient permissions"),
        ('u1', 'm1', 'user', 403, "Forbidden: Insufficient permissions"),
        ('a1', 'u1', 'owner', 400, "Invalid role. Must be: user, moderator, or admin"),
        ('a1', 'u1', None, 400, "Invalid role. Must be: user, moderator, or admin"),
        ('a1', 'ghost', 'admin', 404, "User not found"),
        ('a1', 'a1', 'user', 400, "Cannot change your own role"),
    ])
    def test_rejections(self, service, actor, target, role, status, message):
        """Test each rejected request and its status code."""
        with pytest.raises(RoleChangeError) as exc_info:
            service.change_role(actor, target, role)
        assert exc_info.value.status_code == status
        assert exc_info.value.message == message
        assert len(service.security_log) == 0

    def test_invalid_role_checked_before_target(self, service):
        """Test the role is validated before the target lookup."""
        with pytest.raises(RoleChangeError) as exc_info:
            service.change_role('a1', 'ghost', 'owner')
        assert exc_info.value.status_code == 400

    def test_demoted_admin_loses_ability(self, service):
        """Test the actor's current role is what counts."""
        service.create_user('root2', 'root2@example.com', 'admin', user_id='a2')
        service.change_role('a2', 'a1', 'user')
        with pytest.raises(RoleChangeError) as exc_info:
            service.change_role('a1', 'u1', 'admin')
        assert exc_info.value.status_code == 403

    def test_concurrent_changes_apply_in_order(self, service, monkeypatch):
        """Test two changes to one user apply one after the other."""
        service.create_user('root2', 'root2@example.com', 'admin', user_id='a2')
        real_get_user = service.get_user
        racer = threading.Thread(target=service.change_role, args=('a2', 'u1', 'admin'))

        def get_user_then_race(user_id):
            user = real_get_user(user_id)
            # Second change starts right after the first one reads its target
            if user_id == 'u1' and racer.ident is None:
                racer.start()
                racer.join(timeout=0.2)
            return user

        monkeypatch.setattr(service, 'get_user', get_user_then_race)
        service.change_role('a1', 'u1', 'moderator')
        racer.join(timeout=5)

        later, earlier = service.security_log.list_entries()
        assert later.details['old_role'] == earlier.details['new_role']
        assert real_get_user('u1').role == later.details['new_role']


# ============================================================================
# Seeding
# ============================================================================

class TestSeedUsers:
    """Tests for seeding users from config."""

    def test_creates_then_updates(self):
        """Test seeding creates new users and updates existing ones."""
        service = UserService()
        records = [
            {'username': 'admin', 'email': 'admin@example.com', 'role': 'admin'},
            {'username': 'test_user', 'email': 'user@example.com'},
        ]
        first = service.seed_users(records)
        assert [(u.username, u.role, created) for u, created in first] == [
            ('admin', 'admin', True),
            ('test_user', 'user', True),
        ]

        second = service.seed_users([{'username': 'admin', 'email': 'admin@example.com', 'role': 'moderator'}])
        [(user, created)] = second
        assert not created
        assert user.role == 'moderator'
        assert len(service.list_users()) == 2

    def test_invalid_seed_role(self):
        """Test an undefined seed role is rejected."""
        with pytest.raises(ValidationError, match="invalid role"):
            UserService().seed_users([{'username': 'x', 'email': 'x@example.com', 'role': 'root'}])

    def test_seed_ids_are_strings(self):
        """Test configured ids are stored as strings."""
        service = UserService()
        [(user, _)] = service.seed_users([{'id': 1, 'username': 'admin', 'email': 'a@example.com', 'role': 'admin'}])
        assert user.id == '1'
        assert service.get_user('1') is user


# ============================================================================
# Security log
# ============================================================================

class TestSecurityLog:
    """Tests for SecurityLogService."""

    @pytest.fixture
    def log(self):
        log = SecurityLogService()
        for i in range(3):
            log.create(event_type=EVENT_ROLE_UPDATE, username=f'user{i}')
        return log

    def test_most_recent_first(self, log):
        """Test entries come back newest first."""
        assert [e.username for e in log.list_entries()] == ['user2', 'user1', 'user0']

    def test_limit(self, log):
        assert [e.username for e in log.list_entries(limit=2)] == ['user2', 'user1']

    @pytest.mark.parametrize("limit", [0, -1, -10])
    def test_non_positive_limit_returns_nothing(self, log, limit):
        """Test zero and negative limits return no entries."""
        assert log.list_entries(limit=limit) == []
        assert len(log) == 3
