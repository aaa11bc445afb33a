from __future__ import annotations

import socket
import sys
import unittest
from pathlib import Path

import httpx

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT / "py" / "src"))

from apprig.errors import ConfigurationError, TransportError  # noqa: E402
from apprig.logger import NoOpLogger, RecordingLogger, set_logger  # noqa: E402
from apprig.remote import (  # noqa: E402
    RemoteDispatcher,
    close_shared_client,
    compose_path,
    parse_base_url,
    shared_client,
)
from apprig.request import build_request, normalize_request  # noqa: E402


class Upstream:
    """In-process stand-in for the live server."""

    def __init__(self) -> None:
        self.received: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.received.append(request)
        if request.url.path.endswith("/old"):
            return httpx.Response(302, headers={"Location": "http://server.test/app/new"}, content=b"moved")
        if request.url.path.endswith("/new"):
            return httpx.Response(200, content=b"followed")
        return httpx.Response(200, headers={"Content-Type": "text/plain"}, content=b"remote:" + request.url.raw_path)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class TestComposePath(unittest.TestCase):
    def test_shared_prefix_is_not_duplicated(self) -> None:
        self.assertEqual(compose_path("/app", "/app/foo"), "/app/foo")

    def test_prefix_is_added(self) -> None:
        self.assertEqual(compose_path("/app", "/foo"), "/app/foo")

    def test_root_request_keeps_trailing_slash(self) -> None:
        self.assertEqual(compose_path("/app", "/"), "/app/")

    def test_trailing_slash_on_base_is_ignored(self) -> None:
        self.assertEqual(compose_path("/app/", "/foo"), "/app/foo")

    def test_request_for_the_base_itself(self) -> None:
        self.assertEqual(compose_path("/app", "/app"), "/app")

    def test_trailing_slash_on_request_is_dropped(self) -> None:
        self.assertEqual(compose_path("/app", "/foo/"), "/app/foo")
        self.assertEqual(compose_path("/app", "/app/"), "/app")
        self.assertEqual(compose_path("/app", "/app/foo//"), "/app/foo")

    def test_overlap_stops_at_first_mismatch(self) -> None:
        self.assertEqual(compose_path("/a/b", "/a/c"), "/a/b/c")
        self.assertEqual(compose_path("/a/b", "/b/a"), "/a/b/b/a")
        self.assertEqual(compose_path("/app", "/x/app/y"), "/app/x/app/y")

    def test_empty_base(self) -> None:
        self.assertEqual(compose_path("", "/foo"), "/foo")
        self.assertEqual(compose_path("/", "/foo"), "/foo")


class TestParseBaseURL(unittest.TestCase):
    def test_parses_parts(self) -> None:
        base = parse_base_url("http://localhost:3000/app/")
        self.assertEqual((base.scheme, base.host, base.port, base.path), ("http", "localhost", 3000, "/app"))
        self.assertEqual(parse_base_url("https://example.com").port, 443)
        self.assertEqual(parse_base_url("http://localhost:3000/").path, "")

    def test_rejects_bad_urls(self) -> None:
        for raw in ["", "localhost:3000", "ftp://example.com/", "http://", "http://host:bad/"]:
            with self.subTest(raw=raw):
                with self.assertRaises(ConfigurationError):
                    parse_base_url(raw)


class TestRemoteDispatcher(unittest.TestCase):
    def setUp(self) -> None:
        self.upstream = Upstream()
        self.dispatcher = RemoteDispatcher("http://server.test:8080/app", transport=self.upstream.transport())

    def tearDown(self) -> None:
        self.dispatcher.close()
        set_logger(None)

    def test_rewrites_scheme_host_port_and_path(self) -> None:
        req = build_request("GET", "https://elsewhere.example/foo?x=1", headers={"X-Test": "1"})
        rewritten = self.dispatcher.rewrite(req)
        self.assertEqual(rewritten.url, "http://server.test:8080/app/foo?x=1")
        self.assertEqual(rewritten.headers["x-test"], ["1"])
        self.assertEqual(req.url, "https://elsewhere.example/foo?x=1")

    def test_derived_host_header_is_replaced(self) -> None:
        source = httpx.Request("GET", "http://old.example:9000/p")
        rewritten = self.dispatcher.rewrite(normalize_request(source))
        self.assertNotIn("host", rewritten.headers)

        custom = self.dispatcher.rewrite(normalize_request({"path": "/p", "headers": {"Host": "vhost.test"}}))
        self.assertEqual(custom.header("host"), "vhost.test")

    def test_sends_the_composed_request(self) -> None:
        resp = self.dispatcher.dispatch(build_request("POST", "/app/foo?x=1", headers={"X-Test": "1"}, body=b"data"))

        self.assertEqual(resp.status, 200)
        self.assertEqual(resp.body, b"remote:/app/foo?x=1")
        sent = self.upstream.received[0]
        self.assertEqual(sent.method, "POST")
        self.assertEqual(str(sent.url), "http://server.test:8080/app/foo?x=1")
        self.assertEqual(sent.headers["x-test"], "1")
        self.assertEqual(sent.content, b"data")

    def test_root_request(self) -> None:
        resp = self.dispatcher.dispatch(normalize_request("/"))
        self.assertEqual(resp.body, b"remote:/app/")

    def test_redirects_are_not_followed(self) -> None:
        resp = self.dispatcher.dispatch(normalize_request("/old"))
        self.assertEqual(resp.status, 302)
        self.assertEqual(resp.location, "http://server.test/app/new")
        self.assertEqual(resp.body, b"moved")
        self.assertEqual(len(self.upstream.received), 1)

    def test_client_is_reused_between_requests(self) -> None:
        client = self.dispatcher.client
        self.dispatcher.dispatch(normalize_request("/a"))
        self.dispatcher.dispatch(normalize_request("/b"))
        self.assertIs(self.dispatcher.client, client)
        self.assertFalse(client.follow_redirects)
        self.assertEqual(len(self.upstream.received), 2)

    def test_transport_failures_are_wrapped(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        logger = RecordingLogger()
        set_logger(logger)
        dispatcher = RemoteDispatcher("http://server.test", transport=httpx.MockTransport(refuse))
        try:
            with self.assertRaises(TransportError) as ctx:
                dispatcher.dispatch(normalize_request("/x"))
        finally:
            dispatcher.close()

        self.assertIsInstance(ctx.exception.cause, httpx.ConnectError)
        self.assertIn("http://server.test/x", ctx.exception.message)
        self.assertEqual(logger.messages("warn"), ["apprig: remote transport failure"])

    def test_timeouts_are_wrapped(self) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        dispatcher = RemoteDispatcher("http://server.test", transport=httpx.MockTransport(slow))
        try:
            with self.assertRaises(TransportError) as ctx:
                dispatcher.dispatch(normalize_request("/x"))
        finally:
            dispatcher.close()
        self.assertIsInstance(ctx.exception.cause, httpx.TimeoutException)

    def test_logged_headers_are_redacted(self) -> None:
        seen: list[dict] = []

        class RawLogger(NoOpLogger):
            def debug(self, _message: str, *fields: dict) -> None:
                seen.extend(fields)

        set_logger(RawLogger())
        self.dispatcher.dispatch(build_request("GET", "/p", headers={"Cookie": "sid=1", "Accept": "text/plain"}))

        self.assertEqual(seen[0]["headers"]["cookie"], "[REDACTED]")
        self.assertEqual(seen[0]["headers"]["accept"], ["text/plain"])
        self.assertEqual(self.upstream.received[0].headers["cookie"], "sid=1")

    def test_undecodable_bodies_are_wrapped(self) -> None:
        def bad_gzip(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")

        dispatcher = RemoteDispatcher("http://server.test", transport=httpx.MockTransport(bad_gzip))
        try:
            with self.assertRaises(TransportError) as ctx:
                dispatcher.dispatch(normalize_request("/x"))
        finally:
            dispatcher.close()
        self.assertIsInstance(ctx.exception.cause, httpx.DecodingError)

    def test_injected_client_is_used_and_left_open(self) -> None:
        client = httpx.Client(transport=self.upstream.transport(), follow_redirects=False)
        dispatcher = RemoteDispatcher("http://server.test", client=client)
        self.assertEqual(dispatcher.dispatch(normalize_request("/z")).body, b"remote:/z")
        dispatcher.close()
        self.assertFalse(client.is_closed)
        client.close()


class TestLiveConnection(unittest.TestCase):
    def test_connection_refused(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        dispatcher = RemoteDispatcher(f"http://127.0.0.1:{port}", timeout=5.0, transport=httpx.HTTPTransport())
        try:
            with self.assertRaises(TransportError) as ctx:
                dispatcher.dispatch(normalize_request("/"))
        finally:
            dispatcher.close()
        self.assertIsInstance(ctx.exception.cause, httpx.TransportError)


class TestSharedClient(unittest.TestCase):
    def tearDown(self) -> None:
        close_shared_client()

    def test_shared_client_is_created_once(self) -> None:
        first = shared_client()
        self.assertIs(shared_client(), first)
        self.assertFalse(first.follow_redirects)
        self.assertTrue(first.trust_env)

        dispatcher = RemoteDispatcher("http://server.test")
        self.assertIs(dispatcher.client, first)

    def test_close_resets_the_shared_client(self) -> None:
        first = shared_client()
        close_shared_client()
        self.assertTrue(first.is_closed)
        self.assertIsNot(shared_client(), first)


if __name__ == "__main__":
    unittest.main()
