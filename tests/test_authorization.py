"""Tests for the authorization gate."""

import pytest

from prbot.authorization import TRUSTED_ASSOCIATIONS, is_authorized


class TestIsAuthorized:
    @pytest.mark.parametrize("association", ["OWNER", "MEMBER"])
    def test_trusted_by_default(self, association):
        assert is_authorized(association) is True

    @pytest.mark.parametrize(
        "association", ["COLLABORATOR", "CONTRIBUTOR", "FIRST_TIME_CONTRIBUTOR", "NONE"]
    )
    def test_untrusted_by_default(self, association):
        assert is_authorized(association) is False

    def test_missing_association(self):
        assert is_authorized(None) is False
        assert is_authorized("") is False

    def test_exact_match(self):
        assert is_authorized("member") is False

    def test_custom_trusted_set(self):
        assert is_authorized("COLLABORATOR", ["OWNER", "COLLABORATOR"]) is True
        assert is_authorized("MEMBER", ["OWNER", "COLLABORATOR"]) is False

    def test_default_set(self):
        assert TRUSTED_ASSOCIATIONS == {"OWNER", "MEMBER"}
