import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "py" / "src"))

from apprig import WSGIApplication, create_harness  # noqa: E402


def hello(environ, start_response):
    if environ["PATH_INFO"] == "/moose/get_attribute":
        start_response("200 OK", [("Content-Type", "text/plain")])
        return [b"42\n"]
    if environ["PATH_INFO"] == "/old":
        start_response("301 Moved Permanently", [("Location", "/new")])
        return [b""]
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"root index\n"]


def main() -> None:
    # Set APPRIG_SERVER=http://host:port/prefix to run the same checks against a live server.
    harness = create_harness(WSGIApplication(hello))

    assert harness.get("/") == "root index\n"
    assert harness.get("/moose/get_attribute") == "42\n"

    resp = harness.request("/old")
    assert resp.status == 301
    assert resp.location == "/new"

    if harness.mode.is_local:
        _, environ = harness.ctx_request("/moose/get_attribute?verbose=1")
        assert environ["QUERY_STRING"] == "verbose=1"

    harness.close()
    print("examples/harness/py.py: PASS")


if __name__ == "__main__":
    main()
