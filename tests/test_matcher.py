"""Tests for capability string matching."""

from siteaccess.permissions import capabilities as caps
from siteaccess.permissions.matcher import (
    build_capability,
    create_capability_map,
    filter_capabilities,
    has_all_capabilities,
    has_any_capability,
    has_capability_in,
    is_valid_capability,
    matches_capability,
    minimize_capabilities,
    parse_capability,
    wildcard_specificity,
)
from siteaccess.schemas.roles import ProjectRole


class TestMatching:
    def test_exact(self):
        assert matches_capability("rfis:rfi:read", "rfis:rfi:read")
        assert not matches_capability("rfis:rfi:read", "rfis:rfi:create")

    def test_global_wildcard(self):
        assert matches_capability("*:*:*", "budget:invoice:approve")

    def test_segment_wildcards(self):
        assert matches_capability("documents:*:*", "documents:drawing:update")
        assert matches_capability("schedule:*:read", "schedule:milestone:read")
        assert not matches_capability("schedule:*:read", "schedule:task:update")
        assert matches_capability("project_settings:members:*", "project_settings:members:remove")

    def test_wildcard_only_on_granted_side(self):
        assert not matches_capability("documents:drawing:read", "documents:*:read")

    def test_malformed(self):
        assert not matches_capability("documents:drawing", "documents:drawing:read")
        assert not matches_capability("documents:*:*", "documents::read")

    def test_lists(self):
        granted = ["documents:*:read", "rfis:rfi:create"]
        assert has_capability_in(granted, "documents:photo:read")
        assert not has_capability_in(granted, "rfis:rfi:delete")
        assert has_any_capability(granted, ["budget:invoice:read", "rfis:rfi:create"])
        assert not has_any_capability(granted, [])
        assert has_all_capabilities(granted, [])
        assert not has_all_capabilities(granted, ["documents:model:read", "rfis:rfi:respond"])

    def test_map_and_filter(self):
        granted = ["quality:*:*"]
        wanted = ["quality:punch_item:create", "budget:invoice:read"]
        assert create_capability_map(granted, wanted) == {
            "quality:punch_item:create": True,
            "budget:invoice:read": False,
        }
        assert filter_capabilities(granted, wanted) == ["quality:punch_item:create"]


class TestParsing:
    def test_valid(self):
        assert is_valid_capability("a:b:c")
        assert is_valid_capability("*:*:*")
        assert not is_valid_capability("a:b")
        assert not is_valid_capability("a::c")
        assert not is_valid_capability("")
        assert not is_valid_capability(None)

    def test_parse_and_build(self):
        parts = parse_capability("submittals:submittal:approve")
        assert parts.feature == "submittals"
        assert parts.resource == "submittal"
        assert parts.action == "approve"
        assert build_capability(*parts) == "submittals:submittal:approve"
        assert parse_capability("nope") is None

    def test_specificity(self):
        assert wildcard_specificity("*:*:*") == 0
        assert wildcard_specificity("documents:*:*") == 1
        assert wildcard_specificity("documents:*:read") == 2
        assert wildcard_specificity("documents:drawing:read") == 3

    def test_minimize(self):
        result = minimize_capabilities(
            ["documents:drawing:read", "documents:*:*", "rfis:rfi:read", "rfis:rfi:read"]
        )
        assert result == ["documents:*:*", "rfis:rfi:read"]
        assert minimize_capabilities(["rfis:rfi:read", "*:*:*"]) == ["*:*:*"]


class TestRoleMatrix:
    def test_every_role_has_an_allow_list(self):
        for role in ProjectRole:
            assert caps.role_capabilities(role), role

    def test_every_entry_is_well_formed(self):
        for role, granted in caps.PROJECT_ROLE_CAPABILITIES.items():
            for capability in granted:
                assert is_valid_capability(capability), (role, capability)

    def test_admin_has_everything(self):
        assert caps.role_capabilities(ProjectRole.PROJECT_ADMIN) == (caps.ALL,)

    def test_samples(self):
        viewer = caps.role_capabilities(ProjectRole.VIEWER)
        assert has_capability_in(viewer, caps.DRAWING_READ)
        assert not has_capability_in(viewer, caps.DRAWING_UPDATE)

        manager = caps.role_capabilities(ProjectRole.PROJECT_MANAGER)
        assert has_capability_in(manager, caps.MEMBERS_INVITE)
        assert not has_capability_in(manager, caps.SETTINGS_UPDATE)

        architect = caps.role_capabilities(ProjectRole.ARCHITECT_ENGINEER)
        assert has_capability_in(architect, caps.SUBMITTAL_APPROVE)

    def test_no_role(self):
        assert caps.role_capabilities(None) == ()
