import pytest

from identity_sync.webhooks.adapters import (
    MembershipAttributes,
    OrganizationAttributes,
    UserAttributes,
    map_membership_role,
)
from identity_sync.webhooks.exceptions import InvalidPayload


class TestUserAttributes:

    def test_clerk_user_uses_primary_email(self):
        attrs = UserAttributes.from_data({
            "id": "usr_1",
            "email_addresses": [
                {"id": "e0", "email_address": "other@b.com"},
                {"id": "e1", "email_address": "a@b.com"},
            ],
            "primary_email_address_id": "e1",
            "first_name": "A",
            "last_name": "B",
            "image_url": "https://img/a.png",
            "public_metadata": {"role": "Teacher"},
        })
        assert attrs.external_id == "usr_1"
        assert attrs.email == "a@b.com"
        assert attrs.name == "A B"
        assert attrs.avatar == "https://img/a.png"
        assert attrs.role == "teacher"

    def test_first_address_when_primary_is_unknown(self):
        attrs = UserAttributes.from_data({
            "id": "usr_1",
            "email_addresses": [{"id": "e0", "email_address": "first@b.com"}],
            "primary_email_address_id": "missing",
        })
        assert attrs.email == "first@b.com"

    def test_workos_user_is_flat(self):
        attrs = UserAttributes.from_data({
            "id": "user_01",
            "email": "w@o.com",
            "first_name": "Work",
            "last_name": None,
            "profile_picture_url": "https://img/w.png",
        })
        assert attrs.email == "w@o.com"
        assert attrs.name == "Work"
        assert attrs.avatar == "https://img/w.png"
        assert attrs.role is None

    def test_blank_names_become_unknown_user(self):
        attrs = UserAttributes.from_data({"id": "u", "first_name": "", "last_name": None})
        assert attrs.name == "Unknown User"

    def test_name_left_alone_when_absent(self):
        attrs = UserAttributes.from_data({"id": "u"})
        assert attrs.name is None
        assert attrs.email is None

    def test_unsupported_role_is_dropped(self):
        attrs = UserAttributes.from_data({"id": "u", "public_metadata": {"role": "superuser"}})
        assert attrs.role is None

    def test_missing_id(self):
        with pytest.raises(InvalidPayload):
            UserAttributes.from_data({"email": "a@b.com"})


class TestOrganizationAttributes:

    def test_workos_domains(self):
        attrs = OrganizationAttributes.from_data({
            "id": "org_01",
            "name": "Acme",
            "domains": [{"id": "d1", "domain": "acme.com"}],
        })
        assert attrs.domain == "acme.com"
        assert attrs.created_by is None

    def test_clerk_creator(self):
        attrs = OrganizationAttributes.from_data({
            "id": "org_2",
            "name": "Acme",
            "slug": "acme",
            "created_by": "user_2",
        })
        assert attrs.slug == "acme"
        assert attrs.created_by == "user_2"

    def test_missing_id(self):
        with pytest.raises(InvalidPayload):
            OrganizationAttributes.from_data({"name": "Acme"})


class TestMembershipAttributes:

    @pytest.mark.parametrize(
        "role,expected",
        [
            (None, "member"),
            ({"slug": "admin"}, "admin"),
            ({"slug": "Owner"}, "admin"),
            ({"slug": "guest"}, "viewer"),
            ("viewer", "viewer"),
            ("org:admin", "admin"),
            ("org:member", "member"),
            ({"slug": "billing"}, "member"),
        ],
    )
    def test_role_mapping(self, role, expected):
        assert map_membership_role(role) == expected

    def test_workos_membership(self):
        attrs = MembershipAttributes.from_data({
            "id": "om_01",
            "user_id": "user_01",
            "organization_id": "org_01",
            "role": {"slug": "admin"},
            "status": "pending",
        })
        assert attrs.user_external_id == "user_01"
        assert attrs.organization_external_id == "org_01"
        assert attrs.role == "admin"
        assert attrs.status == "pending"

    def test_clerk_membership(self):
        attrs = MembershipAttributes.from_data({
            "id": "orgmem_1",
            "organization": {"id": "org_2"},
            "public_user_data": {"user_id": "user_2"},
            "role": "org:member",
        })
        assert attrs.user_external_id == "user_2"
        assert attrs.organization_external_id == "org_2"
        assert attrs.status == "active"

    def test_unknown_status_defaults_to_active(self):
        attrs = MembershipAttributes.from_data({"user_id": "u", "organization_id": "o", "status": "weird"})
        assert attrs.status == "active"

    def test_needs_both_sides(self):
        with pytest.raises(InvalidPayload):
            MembershipAttributes.from_data({"user_id": "u"})
