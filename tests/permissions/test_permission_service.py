"""Tests for permission resolution."""

from hypothesis import given
from hypothesis import strategies as st

from entityspace.adapters import RequirementAdapter
from entityspace.core.entity import Entity, Label
from entityspace.permissions import (
    Action,
    PermissionConfig,
    PermissionContext,
    PermissionService,
    UserContext,
)

ROLES = PermissionConfig().role_hierarchy

entity_strategy = st.builds(
    Entity,
    id=st.integers(min_value=1, max_value=50),
    entity_type=st.just("requirement"),
    status=st.sampled_from([None, "draft", "in_progress", "review", "Ferdig", "Ny"]).map(
        lambda name: Label(id=None, name=name) if name else None
    ),
    mandatory=st.booleans(),
    locked=st.booleans(),
    created_by=st.sampled_from([None, 7, 8]),
    project_id=st.sampled_from([None, 100, 200]),
    unit_id=st.sampled_from([None, 1, 2]),
)

user_fields = st.fixed_dictionaries(
    {
        "user_id": st.sampled_from([7, 9]),
        "project_access": st.sampled_from([{}, {100: "read"}, {100: "write", 200: "admin"}]),
        "unit_ids": st.sampled_from([(), (1,), (1, 2)]),
    }
)


@given(
    entity=entity_strategy,
    fields=user_fields,
    action=st.sampled_from(list(Action)),
    ranks=st.tuples(st.integers(0, len(ROLES) - 1), st.integers(0, len(ROLES) - 1)),
)
def test_permission_monotonicity(entity, fields, action, ranks):
    """PROPERTY: A higher role never loses a permission a lower role has."""
    low, high = sorted(ranks)
    adapter = RequirementAdapter("requirement")
    context = PermissionContext(entity=entity)

    lower = PermissionService(adapter, UserContext(role=ROLES[low], **fields))
    higher = PermissionService(adapter, UserContext(role=ROLES[high], **fields))

    if lower.has_permission(action, context):
        assert higher.has_permission(action, context)
    if lower.capabilities(context).allows(action):
        assert higher.capabilities(context).allows(action)


def test_admin_grants_are_subset_of_superadmin():
    config = PermissionConfig()
    assert config.grants_for_role("admin") <= config.grants_for_role("superadmin")
    assert config.grants_for_role("editor") == {Action.VIEW, Action.EDIT, Action.CREATE}
    assert config.grants_for_role("stranger") == frozenset()


def test_no_user_uses_defaults(adapter, make_entity):
    service = PermissionService(adapter)
    context = PermissionContext(entity=make_entity(1))
    assert service.has_permission(Action.VIEW, context)
    assert not service.has_permission(Action.EDIT, context)


def test_direct_permission_with_wildcard(adapter, make_entity):
    user = UserContext(user_id=3, role="user", permissions=("requirement.canEdit.*",))
    service = PermissionService(adapter, user)

    scoped = PermissionContext(entity=make_entity(1), project_id=100)
    unscoped = PermissionContext(entity=make_entity(1, status="review"))

    assert service.build_permission_key(Action.EDIT, scoped) == "requirement.canEdit.project:100"
    assert service.has_permission(Action.EDIT, scoped)
    assert not service.has_permission(Action.EDIT, unscoped)


def test_editor_constrained_by_project_access(adapter, make_entity):
    user = UserContext(user_id=3, role="editor", project_access={100: "read", 200: "write"})
    service = PermissionService(adapter, user)

    assert not service.has_permission(Action.EDIT, PermissionContext(entity=make_entity(1, project_id=100)))
    assert service.has_permission(Action.EDIT, PermissionContext(entity=make_entity(1, project_id=200)))
    assert not service.has_permission(Action.EDIT, PermissionContext(entity=make_entity(1, project_id=300)))


def test_editor_constrained_by_unit(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=3, role="editor", unit_ids=(1,)))
    assert service.has_permission(Action.EDIT, PermissionContext(entity=make_entity(1, unit_id=1)))
    assert not service.has_permission(Action.EDIT, PermissionContext(entity=make_entity(1, unit_id=2)))


def test_admin_bypasses_constraints(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=1, role="admin", unit_ids=(1,)))
    assert service.has_permission(Action.DELETE, PermissionContext(entity=make_entity(1, unit_id=2)))


def test_owner_gets_view_and_edit_only(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=7, role="user"))
    context = PermissionContext(entity=make_entity(1, created_by=7, status="draft"))

    assert service.has_permission(Action.EDIT, context)
    assert not service.has_permission(Action.DELETE, context)
    assert service.is_owner(context.entity)


def test_locked_entities(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=7, role="user"))

    assert service.is_locked(make_entity(1, status="Ferdig"))
    assert service.is_locked(make_entity(2, locked=True))
    assert service.is_locked(make_entity(3, mandatory=True))
    assert not service.is_locked(make_entity(4))
    assert not service.with_user(UserContext(role="admin")).is_locked(make_entity(3, mandatory=True))


def test_capabilities_clear_edit_and_delete_when_locked(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=1, role="superadmin"))
    caps = service.capabilities(PermissionContext(entity=make_entity(1, status="Ferdig")))

    assert caps.can_view and caps.can_create and caps.can_manage
    assert not caps.can_edit
    assert not caps.can_delete
    assert caps.is_locked


def test_status_table_fallback(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=3, role="user"))
    assert service.has_permission(Action.DELETE, PermissionContext(entity=make_entity(1, status="draft")))
    assert not service.has_permission(Action.EDIT, PermissionContext(entity=make_entity(1, status="review")))


def test_parent_fallback(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=3, role="user"))
    child = make_entity(2, parent_id=1)
    parent = make_entity(1, created_by=3)

    assert not service.has_permission(Action.EDIT, PermissionContext(entity=child))
    assert service.has_permission(
        Action.EDIT, PermissionContext(entity=child, parent=parent, check_parent=True)
    )


def test_related_fallback(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=3, role="user"))
    raw = {"id": 1, "tiltak": [{"id": 40, "navn": "Sprinkler", "status": {"navn": "draft"}}]}
    entity = make_entity(1, raw=raw)

    assert not service.has_permission(Action.EDIT, PermissionContext(entity=entity))
    assert service.has_permission(Action.EDIT, PermissionContext(entity=entity, check_related=True))


def test_check_batch(adapter, make_entity):
    service = PermissionService(adapter, UserContext(user_id=1, role="admin"))
    checks = service.check_batch(
        "canDelete", [make_entity(1), make_entity(2, status="completed")]
    )
    assert [c.allowed for c in checks] == [True, False]
