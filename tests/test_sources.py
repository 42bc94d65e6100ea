"""Tests for merging lookups across both origins."""

from unittest.mock import MagicMock

import pytest

from aurorus.modules.models import ORIGIN_AUR, ORIGIN_REPO, NotFound, PackageRecord, SourceUnavailable
from aurorus.modules.sources import SourceClient


def _client(repo_records=None, aur_records=None, repo_error=None, aur_error=None):
    repo = MagicMock()
    aur = MagicMock()
    for mock, records, error in ((repo, repo_records, repo_error), (aur, aur_records, aur_error)):
        if error is not None:
            mock.lookup.side_effect = error
            mock.search.side_effect = error
        else:
            mock.lookup.return_value = records or []
            mock.search.return_value = records or []
    return SourceClient(repo=repo, aur=aur)


REPO_FOO = PackageRecord.create("foo", "1.0-1", ORIGIN_REPO, repository="extra")
AUR_FOO = PackageRecord.create("foo", "1.1-1", ORIGIN_AUR)


class TestLookup:
    def test_records_from_both_origins(self):
        result = _client([REPO_FOO], [AUR_FOO]).lookup("foo")
        assert [r.origin for r in result] == [ORIGIN_REPO, ORIGIN_AUR]
        assert not result.partial

    def test_absent_everywhere(self):
        with pytest.raises(NotFound):
            _client().lookup("ghost")

    def test_partial_failure_keeps_records(self):
        error = SourceUnavailable(ORIGIN_AUR, "timed out")
        result = _client([REPO_FOO], aur_error=error).lookup("foo")
        assert list(result) == [REPO_FOO]
        assert result.unavailable == {ORIGIN_AUR: "timed out"}

    def test_failure_without_records_is_not_absence(self):
        error = SourceUnavailable(ORIGIN_AUR, "timed out")
        with pytest.raises(SourceUnavailable) as exc:
            _client([], aur_error=error).lookup("foo")
        assert exc.value.origin == ORIGIN_AUR
        assert exc.value.name == "foo"


class TestSearch:
    def test_one_origin_down_is_not_fatal(self):
        error = SourceUnavailable(ORIGIN_REPO, "pacman not installed")
        result = _client(aur_records=[AUR_FOO], repo_error=error).search("foo")
        assert result.by_origin(ORIGIN_AUR) == [AUR_FOO]
        assert ORIGIN_REPO in result.unavailable

    def test_no_matches(self):
        assert list(_client().search("zzz")) == []

    def test_both_origins_down(self):
        with pytest.raises(SourceUnavailable):
            _client(repo_error=SourceUnavailable(ORIGIN_REPO, "x"),
                    aur_error=SourceUnavailable(ORIGIN_AUR, "y")).search("foo")
