"""Unit tests for Location and path helpers."""

import pytest

from docsync import Location
from docsync.location import join_path, split_path


class TestSplitPath:
    @pytest.mark.parametrize(
        "path,keys",
        [
            ("/", []),
            ("", []),
            ("/a", ["a"]),
            ("/outer/inner/c", ["outer", "inner", "c"]),
            ("a//b/", ["a", "b"]),
        ],
    )
    def test_split(self, path, keys):
        assert split_path(path) == keys


class TestLocation:
    def test_child_does_not_mutate_parent(self):
        root = Location("demo")
        users = root.child("users")
        alice = users.child("alice")

        assert root.path == ""
        assert users.path == "users"
        assert alice.path == "users/alice"
        assert alice.app == "demo"

    def test_child_cleans_path(self):
        assert join_path("users", "../rooms") == "rooms"
        assert join_path("", "/a/b/") == "a/b"
        assert Location("demo", "a").child("..").path == ""

    def test_url(self):
        assert Location("demo").url() == "https://demo.firebaseio.com/.json"
        assert Location("demo", "a/b").url() == "https://demo.firebaseio.com/a/b.json"
        assert Location("demo", "x").url("http://{app}.local/{path}.json") == "http://demo.local/x.json"

    def test_str(self):
        location = Location("demo", "a/b")
        assert str(location) == "demo:/a/b"

    def test_locations_are_values(self):
        assert Location("demo", "a") == Location("demo").child("a")
        assert len({Location("demo", "a"), Location("demo").child("a")}) == 1
