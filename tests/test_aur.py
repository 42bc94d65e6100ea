"""Tests for the AUR origin client."""

from unittest.mock import MagicMock

import pytest
import requests

from aurorus.modules.aur import AurClient, parse_srcinfo, record_from_srcinfo
from aurorus.modules.models import ORIGIN_AUR, SourceUnavailable

SPLIT_SRCINFO = """
pkgbase = foo
\tpkgdesc = The foo tools
\tpkgver = 1.2
\tpkgrel = 3
\tepoch = 1
\tarch = x86_64
\tmakedepends = cmake
\tcheckdepends = python-pytest
\tdepends = bar>=2.0
\tdepends_x86_64 = lib32-glibc

pkgname = foo
\tprovides = foo-git

pkgname = foo-docs
\tpkgdesc = Documentation for foo
\tdepends = foo
"""


def _response(status=200, text="", json_data=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.json.return_value = json_data
    return resp


class TestParseSrcinfo:
    def test_pkgbase_defaults_apply_to_every_package(self):
        packages = parse_srcinfo(SPLIT_SRCINFO)
        assert sorted(packages) == ["foo", "foo-docs"]
        assert packages["foo"]["pkgver"] == "1.2"
        assert packages["foo"]["depends"] == ["bar>=2.0", "lib32-glibc"]
        assert packages["foo"]["pkgdesc"] == "The foo tools"

    def test_pkgname_overrides_pkgbase(self):
        packages = parse_srcinfo(SPLIT_SRCINFO)
        assert packages["foo-docs"]["depends"] == ["foo"]
        assert packages["foo-docs"]["pkgdesc"] == "Documentation for foo"

    def test_record_version_and_build_deps(self):
        record = record_from_srcinfo(parse_srcinfo(SPLIT_SRCINFO)["foo"])
        assert record.origin == ORIGIN_AUR
        assert record.version == "1:1.2-3"
        assert record.makedepends == ("cmake", "python-pytest")
        assert record.provides == frozenset({"foo-git"})
        assert record.pkgbase == "foo"


class TestAurClient:
    def test_lookup_returns_requested_package(self):
        session = MagicMock()
        session.get.return_value = _response(text=SPLIT_SRCINFO)
        client = AurClient(session=session)

        records = client.lookup("foo-docs")

        assert [r.name for r in records] == ["foo-docs"]
        assert records[0].clone_name == "foo"

    def test_lookup_not_found(self):
        session = MagicMock()
        session.get.return_value = _response(status=404)
        assert AurClient(session=session).lookup("nothing") == []

    def test_lookup_empty_page_means_not_found(self):
        session = MagicMock()
        session.get.return_value = _response(text="\n")
        assert AurClient(session=session).lookup("nothing") == []

    def test_network_error_is_unavailable(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("no route to host")
        with pytest.raises(SourceUnavailable) as exc:
            AurClient(session=session).lookup("foo")
        assert exc.value.origin == ORIGIN_AUR

    def test_server_error_is_unavailable(self):
        session = MagicMock()
        session.get.return_value = _response(status=503)
        with pytest.raises(SourceUnavailable):
            AurClient(session=session).lookup("foo")

    def test_search_sorted_by_votes(self):
        session = MagicMock()
        session.get.return_value = _response(json_data={
            "type": "search",
            "results": [
                {"Name": "low", "Version": "1-1", "NumVotes": 2},
                {"Name": "high", "Version": "1-1", "NumVotes": 90, "Description": "popular"},
            ],
        })
        records = AurClient(session=session).search("x")
        assert [r.name for r in records] == ["high", "low"]
        assert records[0].votes == 90

    def test_rpc_error_is_unavailable(self):
        session = MagicMock()
        session.get.return_value = _response(json_data={"type": "error", "error": "Too many package results."})
        with pytest.raises(SourceUnavailable):
            AurClient(session=session).search("a")

    def test_info_chunk_sends_every_name(self):
        session = MagicMock()
        session.get.return_value = _response(json_data={
            "type": "multiinfo",
            "results": [{"Name": "yay", "Version": "12.4.2-1", "NumVotes": 2000}],
        })

        records = AurClient(session=session).info_chunk(["yay", "paru"])

        assert session.get.call_args.kwargs["params"]["arg[]"] == ["yay", "paru"]
        assert [(r.name, r.version) for r in records] == [("yay", "12.4.2-1")]
