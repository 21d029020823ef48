import pytest

from mcp_rpkg_dev.errors import MissingDescriptor, NotAPackage
from mcp_rpkg_dev.packages.description import (
    as_package,
    collate_order,
    package_imports,
    parse_collate,
    parse_dcf,
    parse_dependencies,
)


def test_parse_dcf_continuation_lines():
    text = (
        "Package: demo\n"
        "Description: First line\n"
        "    second line\n"
        "    .\n"
        "    after a blank\n"
        "Version: 1.0\n"
    )
    fields = parse_dcf(text)

    assert fields["Package"] == "demo"
    assert fields["Version"] == "1.0"
    assert fields["Description"] == "First line\nsecond line\n\nafter a blank"


def test_parse_dcf_stops_at_first_record():
    fields = parse_dcf("Package: one\n\nPackage: two\n")
    assert fields == {"Package": "one"}


@pytest.mark.parametrize("text", ["not a field\n", "  leading continuation\n"])
def test_parse_dcf_malformed(text):
    with pytest.raises(ValueError):
        parse_dcf(text)


def test_parse_dependencies():
    value = "R (>= 3.5), stats,\n    utils (>= 1.0),\n    methods"
    assert parse_dependencies(value) == ["stats", "utils", "methods"]
    assert parse_dependencies("") == []


def test_parse_collate():
    assert parse_collate("\n'a.r'\n'b c.r'\nd.r") == ["a.r", "b c.r", "d.r"]


def test_as_package(fixture_path):
    pkg = as_package(fixture_path / "namespace")

    assert pkg.name == "namespace"
    assert pkg.version == "0.1"
    assert pkg.namespace.exports == ("a", "f")
    assert pkg.tarball_name == "namespace_0.1.tar.gz"
    assert as_package(pkg) is pkg


def test_as_package_without_namespace(fixture_path):
    pkg = as_package(fixture_path / "nonamespace")
    assert pkg.namespace is None


def test_as_package_not_a_package(tmp_path):
    with pytest.raises(NotAPackage, match="Does not appear to be an R package"):
        as_package(tmp_path)


def test_as_package_missing_version(tmp_path):
    (tmp_path / "DESCRIPTION").write_text("Package: noversion\n")
    with pytest.raises(MissingDescriptor, match="Version"):
        as_package(tmp_path)


def test_package_imports(fixture_path):
    assert package_imports(as_package(fixture_path / "namespace")) == ["compiler"]
    assert package_imports(as_package(fixture_path / "collide")) == ["namespace"]


def test_collate_order_from_field(fixture_path):
    files = collate_order(as_package(fixture_path / "namespace"))
    assert [f.name for f in files] == ["a.r", "b.r"]


def test_collate_order_sorted_without_field(r_package):
    path = r_package("nonamespace")
    (path / "R" / "B.R").write_text("B <- 1\n")
    (path / "R" / "notes.txt").write_text("not code\n")

    files = collate_order(as_package(path))
    assert [f.name for f in files] == ["B.R", "x.r"]


def test_collate_order_skips_missing_files(r_package):
    path = r_package("namespace")
    (path / "R" / "b.r").unlink()

    files = collate_order(as_package(path))
    assert [f.name for f in files] == ["a.r"]
