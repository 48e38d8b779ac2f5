import pytest


def pytest_addoption(parser):
    group = parser.getgroup("caslock")
    group.addoption(
        "--memcached-server",
        action="store",
        type=str,
        help="host:port of a memcached server to run the memcached tests against.",
        default="",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--memcached-server"):
        return
    skip = pytest.mark.skip(reason="needs --memcached-server")
    for item in items:
        if "memcached" in item.keywords:
            item.add_marker(skip)
